from __future__ import annotations
import os
import weakref
from typing import Any, Dict, Optional, Tuple

from slox.slox_datatypes import SloxInstance, native_class, native_token
from slox.slox_errors import ThrownError

# Open descriptors, keyed by File instance. Kept out of the instance's fields
# so scripts never see a host object. Each entry carries a finalizer that
# closes the descriptor if the instance is collected while still open.
_DESCRIPTORS: "weakref.WeakKeyDictionary[SloxInstance, Tuple[int, weakref.finalize]]" = weakref.WeakKeyDictionary()


def _attach(this: SloxInstance, fd: int):
    _DESCRIPTORS[this] = (fd, weakref.finalize(this, os.close, fd))


def _release(this: SloxInstance):
    entry = _DESCRIPTORS.pop(this, None)
    if entry is not None:
        entry[1]()


def resolve_path(locator: str, base_dir: Optional[str]) -> str:
    """Resolve a script-supplied path; an optional 'file://' prefix is accepted."""
    rest = locator[7:] if locator.startswith("file://") else locator
    # Absolute filesystem root
    if rest.startswith("/"):
        return "/" + rest.lstrip("/")
    # Home directory
    if rest.startswith("~"):
        return os.path.expanduser(rest)
    # Empty → source file dir or CWD
    if rest == "":
        return base_dir or os.getcwd()
    # Default: relative to source file dir (or CWD)
    base = base_dir or os.getcwd()
    return os.path.normpath(os.path.join(base, rest))


def read_source(locator: str, base_dir: Optional[str] = None) -> str:
    """Read a SLOX source file for `import`."""
    path = resolve_path(locator, base_dir)
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


# --------------------------
# File / FileError / FileSeekMode
# --------------------------

def _file_error_init(evaluator, this, message):
    this.fields["message"] = message


FileErrorClass = native_class("FileError", {"init": _file_error_init})


async def _throw_file_error(evaluator, message: str):
    error = await FileErrorClass.call(evaluator, [message])
    raise ThrownError(native_token("File", evaluator.current_line), error)


async def _descriptor(evaluator, this) -> int:
    entry = _DESCRIPTORS.get(this)
    if entry is None:
        await _throw_file_error(evaluator, "File is not opened")
    return entry[0]


def _option(options: Any, name: str) -> bool:
    if not isinstance(options, SloxInstance):
        return False
    value = options.fields.get(name)
    # Accept both true and "true".
    return value is True or value == "true"


def _file_init(evaluator, this, name):
    this.fields["name"] = name


async def _file_open(evaluator, this, options):
    _release(this)

    read, write = _option(options, "read"), _option(options, "write")
    append = _option(options, "append")
    if (write or append) and read:
        flags = os.O_RDWR
    elif write or append:
        flags = os.O_WRONLY
    else:
        flags = os.O_RDONLY
    if append:
        flags |= os.O_APPEND
    if _option(options, "create"):
        flags |= os.O_CREAT
    if _option(options, "truncate"):
        flags |= os.O_TRUNC

    mode = options.fields.get("mode") if isinstance(options, SloxInstance) else None
    path = resolve_path(str(this.fields["name"]), evaluator.source_dir)
    try:
        _attach(this, os.open(path, flags, int(mode) if mode is not None else 0o666))
    except OSError as e:
        await _throw_file_error(evaluator, f"{e.strerror}: {path}")
    return this


async def _file_write(evaluator, this, text):
    fd = await _descriptor(evaluator, this)
    os.write(fd, (await evaluator.pretty_stringify(text)).encode("utf-8"))
    return this


async def _file_read(evaluator, this, size):
    fd = await _descriptor(evaluator, this)
    data = os.read(fd, int(size))
    if not data:
        return None
    return data.decode("utf-8", errors="replace")


async def _file_seek(evaluator, this, offset, whence):
    fd = await _descriptor(evaluator, this)
    return os.lseek(fd, int(offset), int(whence))


async def _file_truncate(evaluator, this):
    fd = await _descriptor(evaluator, this)
    os.ftruncate(fd, 0)
    return this


async def _file_close(evaluator, this):
    await _descriptor(evaluator, this)
    _release(this)
    return this


def _file_string(evaluator, this):
    state = "opened" if this in _DESCRIPTORS else "closed"
    return f"File {state} {this.fields.get('name')}"


FileClass = native_class("File", {
    "init": _file_init,
    "open": _file_open,
    "write": _file_write,
    "read": _file_read,
    "seek": _file_seek,
    "truncate": _file_truncate,
    "close": _file_close,
    "string": _file_string,
})

FileSeekModeClass = native_class("FileSeekMode", {})


def native_globals() -> Dict[str, Any]:
    seek_mode = SloxInstance(FileSeekModeClass)
    seek_mode.fields.update({"START": os.SEEK_SET, "CURRENT": os.SEEK_CUR, "END": os.SEEK_END})
    return {
        "File": FileClass,
        "FileError": FileErrorClass,
        "FileSeekMode": seek_mode,
    }
