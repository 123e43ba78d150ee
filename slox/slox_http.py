import asyncio
from typing import Any, Dict, Optional

import httpx

from slox.slox_datatypes import SloxInstance, native_class
from slox.slox_serialize import to_builtin


async def http_request(method: str, url: str, *, config: Optional[Dict] = None, data: Optional[str] = None) -> str:
    """
    Core HTTP helper. Returns the response body as text on 2xx and raises on
    anything else, after `retries` attempts with exponential backoff.

    config keys: timeout (s), retries, backoff (s), headers, params.
    """
    cfg = dict(config or {})
    timeout = float(cfg.pop('timeout', 5.0))
    retries = int(cfg.pop('retries', 2))
    backoff = float(cfg.pop('backoff', 0.2))
    headers = {str(k): str(v) for k, v in dict(cfg.pop('headers', None) or {}).items()}
    params = dict(cfg.pop('params', None) or {})

    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        last_exc = None
        for attempt in range(retries + 1):
            try:
                body = data.encode('utf-8') if data is not None else None
                if body is not None:
                    headers.setdefault("Content-Type", "text/plain; charset=utf-8")
                resp = await client.request(
                    method.upper(),
                    url,
                    headers=headers,
                    params=params,
                    content=body,
                )
                if 200 <= resp.status_code < 300:
                    return resp.text
                # Non-2xx → raise
                preview = (resp.text or "")[:200]
                raise RuntimeError(f"HTTP {resp.status_code} for {url}: {preview}")
            except (httpx.HTTPError, RuntimeError) as e:
                last_exc = e
                if attempt < retries:
                    await asyncio.sleep(backoff * (2 ** attempt))
                    continue
                raise last_exc


# --------------------------
# HTTP global class
# --------------------------

def _config(this: SloxInstance) -> Dict[str, Any]:
    headers = this.fields.get("headers")
    return {"headers": to_builtin(headers) if isinstance(headers, SloxInstance) else {}}


def _http_init(evaluator, this, url, headers):
    this.fields["url"] = url
    this.fields["headers"] = headers


async def _http_get(evaluator, this):
    evaluator._dbg("HTTP GET", this.fields.get("url"))
    return await http_request('GET', str(this.fields.get("url")), config=_config(this))


async def _http_post(evaluator, this, body):
    evaluator._dbg("HTTP POST", this.fields.get("url"))
    text = await evaluator.pretty_stringify(body)
    return await http_request('POST', str(this.fields.get("url")), config=_config(this), data=text)


async def _http_header(evaluator, this, name, value):
    headers = this.fields.get("headers")
    if not isinstance(headers, SloxInstance):
        headers = await evaluator.make_object({})
        this.fields["headers"] = headers
    headers.fields[str(name)] = value
    return None


HTTPClass = native_class("HTTP", {
    "init": _http_init,
    "get": _http_get,
    "post": _http_post,
    "header": _http_header,
})


def native_globals() -> Dict[str, Any]:
    return {"HTTP": HTTPClass}
