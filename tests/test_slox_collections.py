import pytest

from slox.slox_runtime import ScriptRunner


async def run_slox(src: str):
    runner = ScriptRunner()
    return await runner.handle_script(src)


def assert_ok(res, expected=None):
    assert res.status == 'success', res.error_message
    if expected is not None:
        assert res.value == expected


def assert_error(res, contains: str | None = None):
    assert res.status == 'error', f"expected error, got success: {res.value!r}"
    if contains is not None:
        assert contains in (res.error_message or ""), f"error did not contain {contains!r}: {res.error_message!r}"


def stdout(res):
    return [e['message'] for e in res.side_effects if e['topics'] == ['stdout']]


# --- List ---

@pytest.mark.asyncio
async def test_list_literal_prints_with_quoted_strings():
    res = await run_slox('print [1, "a", nil, [true]];')
    assert_ok(res)
    assert stdout(res) == ['[1, "a", nil, [true]]']


@pytest.mark.asyncio
async def test_list_append_length_last_and_index():
    src = """
    var xs = List();
    xs.append(1).append(2).append(3);
    return [xs.length(), xs.last(), xs[0], xs.get(1), xs.get(99)];
    """
    res = await run_slox(src)
    assert_ok(res)
    assert res.value.fields["_values"] == [3, 3, 1, 2, None]


@pytest.mark.asyncio
async def test_list_subscript_assignment_pads_with_nil():
    src = """
    var xs = [1];
    xs[3] = "end";
    print xs;
    print xs.length();
    """
    res = await run_slox(src)
    assert_ok(res)
    assert stdout(res) == ['[1, nil, nil, "end"]', "4"]


@pytest.mark.asyncio
async def test_list_set_method():
    res = await run_slox('var xs = []; xs.set(1, "x"); return xs.join("|");')
    assert_ok(res, "nil|x")


@pytest.mark.asyncio
async def test_list_shift_and_pop_return_removed_elements():
    src = """
    var xs = [1, 2, 3];
    var first = xs.shift();
    var last = xs.pop();
    return [first, last, xs.length(), [].pop()];
    """
    res = await run_slox(src)
    assert_ok(res)
    assert res.value.fields["_values"] == [1, 3, 1, None]


@pytest.mark.asyncio
async def test_list_slice_returns_new_list():
    src = """
    var xs = [0, 1, 2, 3, 4];
    var mid = xs.slice(1, 3);
    var tail = xs.slice(2, nil);
    mid.append(99);
    return [mid.join(","), tail.join(","), xs.length()];
    """
    res = await run_slox(src)
    assert_ok(res)
    assert res.value.fields["_values"] == ["1,2,99", "2,3,4", 5]


@pytest.mark.asyncio
async def test_list_foreach_stops_on_truthy_result():
    src = """
    var seen = [];
    [1, 2, 3, 4].foreach(fun (x) { seen.append(x); return x == 2; });
    return seen.join(",");
    """
    assert_ok(await run_slox(src), "1,2")


@pytest.mark.asyncio
async def test_list_bad_property_is_undefined():
    res = await run_slox("[1].nope;")
    assert_error(res, "Undefined property 'nope'.")


@pytest.mark.asyncio
async def test_list_join_uses_print_forms():
    res = await run_slox('return [1, 2.0, "x", nil].join("-");')
    assert_ok(res, "1-2-x-nil")


# --- Map ---

@pytest.mark.asyncio
async def test_map_basic_operations():
    src = """
    var m = Map();
    m.set("a", 1).set(2, "two");
    print m.get("a");
    print m.get(2);
    print m.has("a");
    print m.delete("a");
    print m.has("a");
    print m.get("missing");
    """
    res = await run_slox(src)
    assert_ok(res)
    assert stdout(res) == ["1", "two", "true", "true", "false", "nil"]


@pytest.mark.asyncio
async def test_map_keys_use_strict_equality():
    src = """
    var m = Map();
    m.set(1, "number");
    m.set("1", "string");
    m.set(true, "bool");
    return [m.get(1), m.get("1"), m.get(true)];
    """
    res = await run_slox(src)
    assert_ok(res)
    assert res.value.fields["_values"] == ["number", "string", "bool"]


@pytest.mark.asyncio
async def test_map_string_and_iteration():
    src = """
    var m = Map();
    m.set("x", 1);
    m.set("y", 2);
    print m;
    for (each m as pair) print pair[0] + "=" + pair[1];
    """
    res = await run_slox(src)
    assert_ok(res)
    assert stdout(res) == ['[["x", 1], ["y", 2]]', "x=1", "y=2"]


@pytest.mark.asyncio
async def test_map_foreach():
    src = """
    var m = Map();
    m.set("a", 1); m.set("b", 2); m.set("c", 3);
    var total = 0;
    m.foreach(fun (pair) { total += pair[1]; return pair[0] == "b"; });
    return total;
    """
    assert_ok(await run_slox(src), 3)


@pytest.mark.asyncio
async def test_map_keys_accept_instances_by_identity():
    src = """
    class K {}
    var a = K();
    var m = Map();
    m.set(a, "found");
    return [m.get(a), m.get(K())];
    """
    res = await run_slox(src)
    assert_ok(res)
    assert res.value.fields["_values"] == ["found", None]


# --- Object ---

@pytest.mark.asyncio
async def test_object_string_form():
    res = await run_slox('print { a: 1, b: "x", c: [1] };')
    assert_ok(res)
    assert stdout(res) == ['{a: 1, b: "x", c: [1]}']


@pytest.mark.asyncio
async def test_object_computed_keys():
    res = await run_slox('var k = "dyn"; var o = { (k): 1, "lit": 2, plain: 3 }; print o;')
    assert_ok(res)
    assert stdout(res) == ["{dyn: 1, lit: 2, plain: 3}"]
