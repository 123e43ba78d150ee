import pytest

from slox.slox_datatypes import SloxInstance
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


@pytest.mark.asyncio
async def test_fields_methods_and_this():
    src = """
    class Point {
      init(x, y) { this.x = x; this.y = y; }
      sum() { return this.x + this.y; }
    }
    var p = Point(3, 4);
    p.x = 10;
    return p.sum();
    """
    assert_ok(await run_slox(src), 14)


@pytest.mark.asyncio
async def test_instance_and_class_print_forms():
    res = await run_slox("class Bagel {} print Bagel; print Bagel();")
    assert_ok(res)
    assert stdout(res) == ["Bagel", "Bagel instance"]


@pytest.mark.asyncio
async def test_class_arity_comes_from_init():
    src = """
    class Pair { init(a, b) { this.a = a; this.b = b; } }
    Pair(1);
    """
    assert_error(await run_slox(src), "Expected 2 arguments but got 1.")


@pytest.mark.asyncio
async def test_init_returns_the_instance():
    src = """
    class Box { init() { this.v = 1; } }
    var b = Box();
    return b.init() == b;
    """
    assert_ok(await run_slox(src), True)


@pytest.mark.asyncio
async def test_bound_methods_remember_this():
    src = """
    class Greeter {
      init(name) { this.name = name; }
      greet() { return "hi " + this.name; }
    }
    var g = Greeter("ada").greet;
    return g();
    """
    assert_ok(await run_slox(src), "hi ada")


@pytest.mark.asyncio
async def test_fields_shadow_methods():
    src = """
    class A { m() { return "method"; } }
    var a = A();
    a.m = fun () "field";
    return a.m();
    """
    assert_ok(await run_slox(src), "field")


@pytest.mark.asyncio
async def test_super_chaining():
    src = """
    class A { method() { return "A"; } }
    class B < A { method() { return super.method() + "B"; } }
    return B().method();
    """
    assert_ok(await run_slox(src), "AB")


@pytest.mark.asyncio
async def test_super_resolves_statically_through_three_levels():
    src = """
    class A { say() { return "A"; } }
    class B < A { say() { return "B" + super.say(); } }
    class C < B {}
    return C().say();
    """
    assert_ok(await run_slox(src), "BA")


@pytest.mark.asyncio
async def test_inherited_init():
    src = """
    class Base { init(v) { this.v = v; } }
    class Derived < Base { double() { return this.v * 2; } }
    return Derived(21).double();
    """
    assert_ok(await run_slox(src), 42)


@pytest.mark.asyncio
async def test_superclass_must_be_a_class():
    res = await run_slox("var NotAClass = 1; class Sub < NotAClass {}")
    assert_error(res, "Superclass must be a class.")


@pytest.mark.asyncio
async def test_undefined_property():
    res = await run_slox("class A {} A().nope;")
    assert_error(res, "Undefined property 'nope'.")


@pytest.mark.asyncio
async def test_only_instances_have_properties_and_fields():
    assert_error(await run_slox('"str".length;'), "Only instances have properties.")
    assert_error(await run_slox("var n = 1; n.x = 2;"), "Only instances have fields.")


@pytest.mark.asyncio
async def test_computed_property_names():
    src = """
    var o = {};
    var key = "dyn";
    o[key] = 5;
    o["other"] = o.dyn + 1;
    return o[key] + o.other;
    """
    assert_ok(await run_slox(src), 11)


@pytest.mark.asyncio
async def test_default_handles_missing_names():
    src = """
    class Proxy {
      init() { set(this, "log", []); }
      known() { return "known"; }
      _default(name, value) {
        this.log.append(name);
        if value == nil return "default:" + name;
        return value;
      }
    }
    var p = Proxy();
    print p.known();
    print p.anything;
    p.written = 3;
    print p.log.join(",");
    """
    res = await run_slox(src)
    assert_ok(res)
    assert stdout(res) == ["known", "default:anything", "anything,written"]


@pytest.mark.asyncio
async def test_default_does_not_intercept_existing_fields():
    src = """
    class Proxy {
      init() { set(this, "present", "field"); }
      _default(name, value) { return "fallback"; }
    }
    var p = Proxy();
    p.present = "updated";
    return p.present;
    """
    assert_ok(await run_slox(src), "updated")


@pytest.mark.asyncio
async def test_object_literals_are_instances():
    res = await run_slox('return { name: "slox", version: 1 };')
    assert_ok(res)
    assert isinstance(res.value, SloxInstance)
    assert res.value.klass.name == "Object"
    assert res.value.fields == {"name": "slox", "version": 1}


@pytest.mark.asyncio
async def test_custom_string_method_drives_print():
    src = """
    class Money {
      init(cents) { this.cents = cents; }
      string() { return "$" + this.cents / 100; }
    }
    print Money(250);
    """
    res = await run_slox(src)
    assert_ok(res)
    assert stdout(res) == ["$2.5"]


@pytest.mark.asyncio
async def test_user_iterable_subclass():
    src = """
    class Countdown < Iterable {
      init(n) { super.init(); this.n = n; }
      iterget(i) { if i < this.n return this.n - i; return nil; }
    }
    var out = [];
    for (each Countdown(3) as x) out.append(x);
    return out.join(" ");
    """
    assert_ok(await run_slox(src), "3 2 1")


@pytest.mark.asyncio
async def test_iterable_without_iterget_throws_iter_error():
    src = """
    class Broken < Iterable {}
    try {
      for (each Broken() as x) print x;
    } catch e {
      return instanceof(e, IterError);
    }
    """
    assert_ok(await run_slox(src), True)
