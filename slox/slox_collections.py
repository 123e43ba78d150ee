"""
Native collection classes: Iterable, List, MapIterable, Map, Object.

Every method here is a plain Python callable with the signature
`method(evaluator, this, *args)`, wrapped into a SloxClass by
`native_class`. List and Object are also what list and object literals
evaluate to, so the evaluator builds them from the classes defined here
regardless of what the program binds to the global names.
"""
from typing import Any, Dict, Tuple

from slox.slox_datatypes import (
    SloxInstance, is_number, is_truthy, native_class, native_token, stringify,
)
from slox.slox_errors import SloxRuntimeError, ThrownError

_MISSING = object()


def _values(this: SloxInstance):
    return this.fields["_values"]


def _as_index(value: Any):
    """An integer index from a number or a digit string, else None."""
    if is_number(value) and float(value).is_integer():
        return int(value)
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


async def _literal(evaluator, value: Any) -> str:
    """Renders an element inside a collection's string form; strings are quoted."""
    if isinstance(value, str):
        return f'"{value}"'
    return await evaluator.pretty_stringify(value)


# =================================================================
# Iterable
# =================================================================

def _iterable_init(evaluator, this):
    this.fields["_counter"] = 0


def _iterable_iterreset(evaluator, this):
    this.fields["_counter"] = 0
    return this


async def _iterget(evaluator, this, index):
    getter = this.get_permissive("iterget")
    if getter is None:
        error = await IterError.call(evaluator, ["iterget method is missing"])
        raise ThrownError(native_token("iterget", evaluator.current_line), error)
    return await getter.call(evaluator, [index])


async def _iterable_iterhas(evaluator, this):
    return await _iterget(evaluator, this, this.fields.get("_counter", 0)) is not None


async def _iterable_iternext(evaluator, this):
    current = this.fields.get("_counter", 0)
    value = await _iterget(evaluator, this, current)
    this.fields["_counter"] = current + 1
    return value


def _iter_error_init(evaluator, this, message):
    this.fields["message"] = message


IterError = native_class("IterError", {"init": _iter_error_init})

Iterable = native_class("Iterable", {
    "init": _iterable_init,
    "iterreset": _iterable_iterreset,
    "iterhas": _iterable_iterhas,
    "iternext": _iterable_iternext,
})


# =================================================================
# List
# =================================================================

def _list_init(evaluator, this, values=None):
    _iterable_init(evaluator, this)
    this.fields["_values"] = list(values) if values is not None else []


def _list_append(evaluator, this, value):
    _values(this).append(value)
    return this


def _store(values: list, index: int, value: Any):
    if index >= len(values):
        values.extend([None] * (index + 1 - len(values)))
    values[index] = value


def _list_set(evaluator, this, index, value):
    position = _as_index(index)
    if position is None:
        raise SloxRuntimeError(native_token("set", evaluator.current_line),
                               f"List index must be a non-negative integer, got {stringify(index)}.")
    _store(_values(this), position, value)
    return this


def _list_shift(evaluator, this):
    values = _values(this)
    return values.pop(0) if values else None


def _list_pop(evaluator, this):
    values = _values(this)
    return values.pop() if values else None


async def _list_slice(evaluator, this, start, end):
    values = _values(this)
    begin = _as_index(start) or 0
    stop = len(values) if end is None else _as_index(end)
    return await evaluator.make_list(values[begin:stop])


async def _list_foreach(evaluator, this, callback):
    for item in list(_values(this)):
        if is_truthy(await callback.call(evaluator, [item])):
            break
    return None


def _list_get(evaluator, this, index):
    values = _values(this)
    position = _as_index(index)
    if position is None or position >= len(values):
        return None
    return values[position]


def _list_iterhas(evaluator, this):
    return this.fields.get("_counter", 0) < len(_values(this))


def _list_length(evaluator, this):
    return len(_values(this))


def _list_last(evaluator, this):
    values = _values(this)
    return values[-1] if values else None


async def _list_join(evaluator, this, separator):
    parts = [await evaluator.pretty_stringify(value) for value in _values(this)]
    return stringify(separator).join(parts)


async def _list_string(evaluator, this):
    parts = [await _literal(evaluator, value) for value in _values(this)]
    return "[" + ", ".join(parts) + "]"


def _list_default(evaluator, this, name, value=_MISSING):
    """Integer subscripts: `list[0]` reads, `list[5] = x` writes and pads with nil."""
    position = _as_index(name)
    if position is None:
        raise SloxRuntimeError(native_token(stringify(name), evaluator.current_line),
                               f"Undefined property '{stringify(name)}'.")
    values = _values(this)
    if value is not _MISSING:
        _store(values, position, value)
        return value
    return values[position] if position < len(values) else None


List = native_class("List", {
    "init": _list_init,
    "append": _list_append,
    "set": _list_set,
    "shift": _list_shift,
    "pop": _list_pop,
    "slice": _list_slice,
    "foreach": _list_foreach,
    "get": _list_get,
    "iterget": _list_get,
    "iterhas": _list_iterhas,
    "length": _list_length,
    "last": _list_last,
    "join": _list_join,
    "string": _list_string,
    "_default": _list_default,
}, Iterable)


# =================================================================
# Map
# =================================================================

def _map_key(key: Any) -> Tuple[str, Any]:
    """Hashable identity for a map key that keeps strict equality (true != 1)."""
    match key:
        case None:
            return ("nil", None)
        case bool():
            return ("bool", key)
        case int() | float():
            return ("number", key)
        case str():
            return ("string", key)
        case _:
            return ("ref", id(key))


def _entries(this: SloxInstance) -> Dict[Tuple[str, Any], Tuple[Any, Any]]:
    return this.fields["_values"]


def _map_iterable_iterhas(evaluator, this):
    return this.fields.get("_counter", 0) < len(_entries(this))


async def _map_iterable_iterget(evaluator, this, index):
    entries = list(_entries(this).values())
    position = _as_index(index)
    if position is None or position >= len(entries):
        return None
    key, value = entries[position]
    return await evaluator.make_list([key, value])


MapIterable = native_class("MapIterable", {
    "iterhas": _map_iterable_iterhas,
    "iterget": _map_iterable_iterget,
}, Iterable)


def _map_init(evaluator, this):
    _iterable_init(evaluator, this)
    this.fields["_values"] = {}


def _map_get(evaluator, this, key):
    entry = _entries(this).get(_map_key(key))
    return entry[1] if entry is not None else None


def _map_set(evaluator, this, key, value):
    _entries(this)[_map_key(key)] = (key, value)
    return this


def _map_delete(evaluator, this, key):
    return _entries(this).pop(_map_key(key), None) is not None


def _map_has(evaluator, this, key):
    return _map_key(key) in _entries(this)


async def _map_foreach(evaluator, this, callback):
    for key, value in list(_entries(this).values()):
        pair = await evaluator.make_list([key, value])
        if is_truthy(await callback.call(evaluator, [pair])):
            break
    return None


async def _map_string(evaluator, this):
    parts = []
    for key, value in _entries(this).values():
        parts.append(f"[{await _literal(evaluator, key)}, {await _literal(evaluator, value)}]")
    return "[" + ", ".join(parts) + "]"


Map = native_class("Map", {
    "init": _map_init,
    "get": _map_get,
    "set": _map_set,
    "delete": _map_delete,
    "has": _map_has,
    "foreach": _map_foreach,
    "string": _map_string,
}, MapIterable)


# =================================================================
# Object
# =================================================================

async def _object_string(evaluator, this):
    parts = [f"{name}: {await _literal(evaluator, value)}" for name, value in this.fields.items()]
    return "{" + ", ".join(parts) + "}"


Object = native_class("Object", {"string": _object_string})


def native_globals() -> Dict[str, Any]:
    return {
        "Iterable": Iterable,
        "IterError": IterError,
        "List": List,
        "MapIterable": MapIterable,
        "Map": Map,
        "Object": Object,
    }
