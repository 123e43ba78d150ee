import httpx
import pytest

import slox.slox_http as slox_http_mod
from slox.slox_http import http_request
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


@pytest.fixture
def fake_http(monkeypatch):
    calls = []

    async def _fake(method, url, *, config=None, data=None):
        calls.append({"method": method, "url": url, "config": config, "data": data})
        return f"{method} ok"

    monkeypatch.setattr(slox_http_mod, "http_request", _fake)
    return calls


def _mock_client(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def _factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(slox_http_mod.httpx, "AsyncClient", _factory)


# --- HTTP global class ---

@pytest.mark.asyncio
async def test_get_returns_body_text(fake_http):
    res = await run_slox('return HTTP("http://example/api", nil).get();')
    assert_ok(res, "GET ok")
    assert fake_http == [{"method": "GET", "url": "http://example/api", "config": {"headers": {}}, "data": None}]


@pytest.mark.asyncio
async def test_header_then_post_sends_headers_and_text_body(fake_http):
    src = """
    var client = HTTP("http://example/items", nil);
    client.header("X-Token", "abc");
    return client.post(JSON.generate({ a: 1 }));
    """
    assert_ok(await run_slox(src), "POST ok")
    call = fake_http[0]
    assert call["method"] == "POST"
    assert call["config"] == {"headers": {"X-Token": "abc"}}
    assert call["data"] == '{"a":1}'


@pytest.mark.asyncio
async def test_headers_passed_at_construction(fake_http):
    src = 'HTTP("http://example", { Accept: "text/plain" }).post(12);'
    assert_ok(await run_slox(src))
    assert fake_http[0]["config"] == {"headers": {"Accept": "text/plain"}}
    assert fake_http[0]["data"] == "12"


@pytest.mark.asyncio
async def test_transport_failure_becomes_runtime_error(monkeypatch):
    async def _boom(method, url, *, config=None, data=None):
        raise RuntimeError("HTTP 503 for http://down: unavailable")

    monkeypatch.setattr(slox_http_mod, "http_request", _boom)
    res = await run_slox('HTTP("http://down", nil).get();')
    assert_error(res, "RuntimeError: HTTP 503 for http://down: unavailable")
    assert res.exit_code == 70


# --- http_request helper ---

@pytest.mark.asyncio
async def test_http_request_sends_text_body_with_default_content_type(monkeypatch):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text="created")

    _mock_client(monkeypatch, handler)
    out = await http_request("post", "http://example/api", config={"headers": {"X-Num": 1}}, data="payload")
    assert out == "created"
    assert seen[0].method == "POST"
    assert seen[0].content == b"payload"
    assert seen[0].headers["Content-Type"] == "text/plain; charset=utf-8"
    assert seen[0].headers["X-Num"] == "1"


@pytest.mark.asyncio
async def test_http_request_retries_then_succeeds(monkeypatch):
    statuses = [500, 502, 200]

    def handler(request):
        return httpx.Response(statuses.pop(0), text="fine")

    _mock_client(monkeypatch, handler)
    out = await http_request("GET", "http://example/flaky", config={"retries": 2, "backoff": 0})
    assert out == "fine"
    assert statuses == []


@pytest.mark.asyncio
async def test_http_request_raises_after_last_attempt(monkeypatch):
    def handler(request):
        return httpx.Response(404, text="missing")

    _mock_client(monkeypatch, handler)
    with pytest.raises(RuntimeError, match="HTTP 404 for http://example/gone: missing"):
        await http_request("GET", "http://example/gone", config={"retries": 0})
