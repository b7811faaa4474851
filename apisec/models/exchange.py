import json
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict


class ResponseSnapshot(BaseModel):
    """One captured HTTP exchange.

    ``status_code`` is 0 and ``error`` is set when the request never got a
    response (connection refused, timeout, invalid URL).
    """
    model_config = ConfigDict(frozen=True)

    url: str = ""
    method: str = "GET"
    status_code: int = 0
    headers: dict[str, str] = {}      # lower-cased names
    set_cookies: list[str] = []
    text: str = ""
    elapsed_ms: float = 0.0
    error: Optional[str] = None

    @classmethod
    def from_httpx(cls, resp: httpx.Response, elapsed_ms: float = 0.0) -> "ResponseSnapshot":
        return cls(
            url=str(resp.request.url),
            method=resp.request.method,
            status_code=resp.status_code,
            headers={k.lower(): v for k, v in resp.headers.items()},
            set_cookies=resp.headers.get_list("set-cookie"),
            text=resp.text,
            elapsed_ms=elapsed_ms,
        )

    @classmethod
    def failure(cls, method: str, url: str, error: str) -> "ResponseSnapshot":
        return cls(url=url, method=method, error=error)

    @property
    def failed(self) -> bool:
        return self.status_code == 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    @property
    def content_type(self) -> str:
        return (self.header("content-type") or "").split(";")[0].strip().lower()

    @property
    def is_html(self) -> bool:
        return "html" in self.content_type or self.text.lstrip()[:15].lower().startswith(("<!doctype", "<html"))

    def json_body(self) -> Any:
        """Parsed JSON body, or None when the body is not JSON."""
        if not self.text:
            return None
        try:
            return json.loads(self.text)
        except ValueError:
            return None
