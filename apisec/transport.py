"""
Thin request layer shared by discovery, auth and probes.

Every network failure is turned into a ``ResponseSnapshot`` with
``status_code == 0`` so callers can log it as an attempt and move on.
"""

import json
import logging
import time
from typing import Any

import httpx

from apisec.config import BASE_URL, DEFAULT_HEADERS, REQUEST_TIMEOUT
from apisec.models.exchange import ResponseSnapshot

log = logging.getLogger(__name__)


def build_client(
    base_url: str = BASE_URL,
    transport: httpx.AsyncBaseTransport | None = None,
    timeout: float = REQUEST_TIMEOUT,
) -> httpx.AsyncClient:
    """Client used for one scenario.

    Redirects are not followed: a 302/303 from a form endpoint is itself
    a discovery signal.
    """
    return httpx.AsyncClient(
        base_url=base_url,
        headers=DEFAULT_HEADERS,
        timeout=timeout,
        verify=False,
        follow_redirects=False,
        transport=transport,
    )


def encode_json(body: Any) -> bytes:
    """Serialize without httpx's NaN/Infinity guard so boundary values reach the server."""
    return json.dumps(body).encode()


async def send(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    json_body: Any = None,
    form: dict | None = None,
    content: str | bytes | None = None,
    headers: dict | None = None,
    params: dict | None = None,
) -> ResponseSnapshot:
    """Send one request and capture the response.

    Exactly one of *json_body*, *form* or *content* is used as the body.
    """
    req_headers = dict(headers or {})
    kwargs: dict = {}
    if json_body is not None:
        kwargs["content"] = encode_json(json_body)
        req_headers.setdefault("Content-Type", "application/json")
    elif form is not None:
        kwargs["data"] = form
    elif content is not None:
        kwargs["content"] = content.encode() if isinstance(content, str) else content
    if params:
        kwargs["params"] = params

    start = time.perf_counter()
    try:
        resp = await client.request(method, path, headers=req_headers, **kwargs)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        log.debug("%s %s failed: %s", method, path, e)
        return ResponseSnapshot.failure(method, path, f"{type(e).__name__}: {e}")
    elapsed = (time.perf_counter() - start) * 1000
    # sessions travel only through explicit Cookie / Authorization headers
    client.cookies.clear()
    log.debug("%s %s -> %d (%.0f ms)", method, path, resp.status_code, elapsed)
    return ResponseSnapshot.from_httpx(resp, elapsed)
