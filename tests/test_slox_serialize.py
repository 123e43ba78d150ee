import pytest

from slox.slox_datatypes import SloxClass, SloxInstance
from slox.slox_interpreter import Evaluator
from slox.slox_runtime import ScriptRunner
from slox.slox_serialize import DeserializeError, deserialize, from_builtin, serialize, to_builtin


async def run_slox(src: str):
    runner = ScriptRunner()
    return await runner.handle_script(src)


def assert_ok(res, expected=None):
    assert res.status == 'success', res.error_message
    if expected is not None:
        assert res.value == expected


def stdout(res):
    return [e['message'] for e in res.side_effects if e['topics'] == ['stdout']]


# --- Python-level helpers ---

def test_deserialize_json_and_yaml():
    assert deserialize('{"name": "café", "n": [1, 2]}', fmt="json") == {"name": "café", "n": [1, 2]}
    assert deserialize("name: slox\nitems:\n  - 1\n", fmt="YAML") == {"name": "slox", "items": [1]}


def test_deserialize_invalid_raises():
    with pytest.raises(DeserializeError):
        deserialize("{oops", fmt="json")
    with pytest.raises(DeserializeError):
        deserialize("a: [1", fmt="yaml")


def test_unknown_formats_are_rejected():
    with pytest.raises(ValueError, match="Unsupported serialization format"):
        serialize({"a": 1}, fmt="toml")
    with pytest.raises(ValueError, match="Unsupported serialization format"):
        deserialize("a = 1", fmt="toml")


@pytest.mark.asyncio
async def test_builtin_round_trip_through_slox_values():
    evaluator = Evaluator()
    data = {"name": "slox", "tags": ["a", "b"], "meta": {"stars": 3, "ok": True, "none": None}}
    value = await from_builtin(evaluator, data)
    assert value.klass.name == "Object"
    assert value.fields["tags"].klass.name == "List"
    assert to_builtin(value) == data


def test_to_builtin_skips_private_fields():
    instance = SloxInstance(SloxClass("Thing", None, {}))
    instance.fields.update({"visible": 1, "_hidden": 2})
    assert to_builtin(instance) == {"visible": 1}


# --- JSON / YAML globals ---

@pytest.mark.asyncio
async def test_json_parse_builds_objects_and_lists():
    src = """
    var data = JSON.parse("{\\"name\\": \\"slox\\", \\"nums\\": [1, 2.5], \\"nested\\": {\\"ok\\": true}}");
    print data.name;
    print data.nums;
    print data.nested.ok;
    """
    res = await run_slox(src)
    assert_ok(res)
    assert stdout(res) == ["slox", "[1, 2.5]", "true"]


@pytest.mark.asyncio
async def test_json_parse_invalid_returns_nil():
    assert_ok(await run_slox('return JSON.parse("{not json") == nil;'), True)
    assert_ok(await run_slox("return JSON.parse(42) == nil;"), True)


@pytest.mark.asyncio
async def test_json_generate_is_compact():
    res = await run_slox('return JSON.generate({ a: [1, "x", nil], b: { c: false } });')
    assert_ok(res, '{"a":[1,"x",null],"b":{"c":false}}')


@pytest.mark.asyncio
async def test_json_generate_map_uses_string_keys():
    src = """
    var m = Map();
    m.set(1, "one");
    m.set("k", [true]);
    return JSON.generate(m);
    """
    assert_ok(await run_slox(src), '{"1":"one","k":[true]}')


@pytest.mark.asyncio
async def test_yaml_generate_and_parse():
    res = await run_slox('return YAML.generate({ name: "slox", items: [1, 2] });')
    assert_ok(res, "name: slox\nitems:\n- 1\n- 2\n")

    src = 'var doc = YAML.parse("name: slox\nitems:\n  - 1\n  - 2\n"); return doc.items.length();'
    assert_ok(await run_slox(src), 2)
