from __future__ import annotations

import json
from typing import Any, Dict

import yaml

from slox.slox_datatypes import SloxCallable, SloxInstance, native_class, stringify


class DeserializeError(ValueError):
    """Raised by `deserialize` when the text is not valid for the format."""
    pass


# --------------------------
# Helpers
# --------------------------

def to_builtin(value: Any) -> Any:
    """Convert a SLOX value into plain Python data (dict/list/scalars).

    Lists and Maps become lists and dicts; any other instance becomes a dict
    of its public fields (names not starting with '_').
    """
    if isinstance(value, SloxInstance):
        inner = value.fields.get("_values")
        if isinstance(inner, list):
            return [to_builtin(x) for x in inner]
        if isinstance(inner, dict):
            return {stringify(k): to_builtin(v) for k, v in inner.values()}
        return {k: to_builtin(v) for k, v in value.fields.items() if not k.startswith("_")}
    if isinstance(value, SloxCallable):
        return stringify(value)
    return value


async def from_builtin(evaluator, data: Any) -> Any:
    """Convert plain Python data into SLOX values: dicts become Objects, lists become Lists."""
    if isinstance(data, dict):
        fields = {str(k): await from_builtin(evaluator, v) for k, v in data.items()}
        return await evaluator.make_object(fields)
    if isinstance(data, list):
        return await evaluator.make_list([await from_builtin(evaluator, x) for x in data])
    if data is None or isinstance(data, (bool, int, float, str)):
        return data
    # Dates and other YAML scalars have no SLOX counterpart.
    return str(data)


# --------------------------
# Public API
# --------------------------

def deserialize(text: str, *, fmt: str) -> Any:
    """
    Convert text to plain Python structures.
    Supported fmt: 'json', 'yaml'.
    """
    f = (fmt or '').lower()
    try:
        if f == 'json':
            return json.loads(text)
        if f == 'yaml':
            return yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        raise DeserializeError(str(e)) from e
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def serialize(value: Any, *, fmt: str) -> str:
    """
    Convert a SLOX (or plain Python) value into text.
    - fmt: 'json' (compact) | 'yaml'
    """
    f = (fmt or '').lower()
    built = to_builtin(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, separators=(',', ':'))
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


# --------------------------
# JSON / YAML globals
# --------------------------

async def _parse_with(evaluator, source, fmt: str):
    if not isinstance(source, str):
        return None
    try:
        data = deserialize(source, fmt=fmt)
    except DeserializeError:
        return None
    return await from_builtin(evaluator, data)


async def _json_parse(evaluator, this, source):
    return await _parse_with(evaluator, source, 'json')


def _json_generate(evaluator, this, value):
    return serialize(value, fmt='json')


async def _yaml_parse(evaluator, this, source):
    return await _parse_with(evaluator, source, 'yaml')


def _yaml_generate(evaluator, this, value):
    return serialize(value, fmt='yaml')


JSONClass = native_class("JSON", {"parse": _json_parse, "generate": _json_generate})
YAMLClass = native_class("YAML", {"parse": _yaml_parse, "generate": _yaml_generate})


def native_globals() -> Dict[str, Any]:
    return {
        "JSON": SloxInstance(JSONClass),
        "YAML": SloxInstance(YAMLClass),
    }


__all__ = [
    "DeserializeError",
    "deserialize",
    "serialize",
    "to_builtin",
    "from_builtin",
    "native_globals",
]
