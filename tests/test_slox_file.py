import gc
import os

import pytest

from slox.slox_file import _DESCRIPTORS, FileClass, read_source, resolve_path
from slox.slox_interpreter import Evaluator
from slox.slox_runtime import ScriptRunner
from slox.slox_tokens import TokenType, synthetic


def name(text: str):
    return synthetic(TokenType.IDENTIFIER, text, 1)


async def run_in(tmp_path, src: str):
    runner = ScriptRunner(source_dir=str(tmp_path))
    return await runner.handle_script(src)


def assert_ok(res, expected=None):
    assert res.status == 'success', res.error_message
    if expected is not None:
        assert res.value == expected


def stdout(res):
    return [e['message'] for e in res.side_effects if e['topics'] == ['stdout']]


def test_resolve_path_variants(tmp_path):
    base = str(tmp_path)
    assert resolve_path("data.txt", base) == os.path.join(base, "data.txt")
    assert resolve_path("sub/../data.txt", base) == os.path.join(base, "data.txt")
    assert resolve_path("file:///etc/hosts", base) == "/etc/hosts"
    assert resolve_path("//etc/hosts", base) == "/etc/hosts"
    assert resolve_path("~/notes", base) == os.path.expanduser("~/notes")
    assert resolve_path("", base) == base


def test_read_source_relative_to_base(tmp_path):
    (tmp_path / "mod.slox").write_text("print 1;", encoding="utf-8")
    assert read_source("mod.slox", str(tmp_path)) == "print 1;"
    with pytest.raises(OSError):
        read_source("missing.slox", str(tmp_path))


@pytest.mark.asyncio
async def test_write_then_read_with_seek(tmp_path):
    src = """
    var w = File("notes.txt");
    w.open({ write: true, create: true, truncate: true });
    w.write("hello world");
    w.close();

    var r = File("notes.txt");
    r.open({ read: true });
    print r.read(5);
    print r.seek(6, FileSeekMode.START);
    print r.read(100);
    print r.read(10);
    print r;
    r.close();
    print r;
    """
    res = await run_in(tmp_path, src)
    assert_ok(res)
    assert stdout(res) == ["hello", "6", "world", "nil", "File opened notes.txt", "File closed notes.txt"]
    assert (tmp_path / "notes.txt").read_text(encoding="utf-8") == "hello world"


@pytest.mark.asyncio
async def test_append_and_string_options(tmp_path):
    target = tmp_path / "log.txt"
    target.write_text("a", encoding="utf-8")
    src = """
    var f = File("log.txt");
    f.open({ append: "true" }).write("b").write(2).close();
    """
    assert_ok(await run_in(tmp_path, src))
    assert target.read_text(encoding="utf-8") == "ab2"


@pytest.mark.asyncio
async def test_truncate(tmp_path):
    target = tmp_path / "big.txt"
    target.write_text("lots of text", encoding="utf-8")
    src = 'File("big.txt").open({ write: true }).truncate().close();'
    assert_ok(await run_in(tmp_path, src))
    assert target.read_text(encoding="utf-8") == ""


@pytest.mark.asyncio
async def test_absolute_and_file_scheme_paths(tmp_path):
    target = tmp_path / "abs.txt"
    target.write_text("absolute", encoding="utf-8")
    src = f'var f = File("file://{target}"); f.open({{ read: true }}); return f.read(100);'
    assert_ok(await run_in(tmp_path, src), "absolute")


@pytest.mark.asyncio
async def test_operations_on_unopened_file_throw_file_error(tmp_path):
    src = """
    try {
      File("never.txt").read(1);
    } catch e {
      print instanceof(e, FileError);
      print e.message;
    }
    """
    res = await run_in(tmp_path, src)
    assert_ok(res)
    assert stdout(res) == ["true", "File is not opened"]


@pytest.mark.asyncio
async def test_opening_missing_file_throws_catchable_error(tmp_path):
    src = """
    try File("missing.txt").open({ read: true }); catch e return e.message;
    """
    res = await run_in(tmp_path, src)
    assert_ok(res)
    assert res.value.startswith("No such file or directory")


@pytest.mark.asyncio
async def test_uncaught_file_error_reports_its_string(tmp_path):
    res = await run_in(tmp_path, 'File("none.txt").close();')
    assert res.status == 'error'
    assert "Uncaught exception: FileError instance" in res.error_message


@pytest.mark.asyncio
async def test_unclosed_file_is_closed_when_collected(tmp_path):
    evaluator = Evaluator()
    evaluator.source_dir = str(tmp_path)
    handle = await FileClass.call(evaluator, ["leak.txt"])
    options = await evaluator.make_object({"write": True, "create": True})
    await handle.get(name("open")).call(evaluator, [options])
    fd = _DESCRIPTORS[handle][0]
    os.fstat(fd)

    del handle
    gc.collect()
    with pytest.raises(OSError):
        os.fstat(fd)


@pytest.mark.asyncio
async def test_close_releases_descriptor(tmp_path):
    evaluator = Evaluator()
    evaluator.source_dir = str(tmp_path)
    handle = await FileClass.call(evaluator, ["closed.txt"])
    options = await evaluator.make_object({"write": True, "create": True})
    await handle.get(name("open")).call(evaluator, [options])
    fd = _DESCRIPTORS[handle][0]
    await handle.get(name("close")).call(evaluator, [])
    assert handle not in _DESCRIPTORS
    with pytest.raises(OSError):
        os.fstat(fd)
