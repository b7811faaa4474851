import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import httpx

from apisec.auth.helper import AuthHelper
from apisec.config import RESPONSE_CAP
from apisec.discovery.engine import DiscoveryEngine
from apisec.models.exchange import ResponseSnapshot
from apisec.reporting.reporter import SecurityReporter
from apisec.storage.credentials import CredentialStore

log = logging.getLogger(__name__)

# ── Detection tables ──────────────────────────────────────────────────

SQL_ERROR_PATTERNS: dict[str, list[str]] = {
    "mysql": [
        r"you have an error in your sql syntax",
        r"warning.*mysql",
        r"mysql_fetch",
        r"mysqli?_",
        r"unclosed quotation mark",
    ],
    "postgresql": [
        r"pg_query",
        r"postgresql.*error",
        r"unterminated quoted string",
        r"syntax error at or near",
    ],
    "sqlite": [
        r"sqlite3?\.operationalerror",
        r"sqlite_error",
        r"unrecognized token",
        r"sqlite3",
    ],
    "mssql": [
        r"microsoft.*odbc.*sql server",
        r"\[sql server\]",
    ],
    "oracle": [
        r"ora-\d{5}",
        r"quoted string not properly terminated",
    ],
    "generic": [
        r"sql syntax.*error",
        r"sqlstate\[",
    ],
}

NOSQL_ERROR_PATTERNS = [
    r"mongoerror",
    r"mongoservererror",
    r"castError",
    r"unknown top level operator",
    r"badvalue",
    r"cannot apply \$",
]

STACK_TRACE_PATTERNS = [
    r"traceback \(most recent call last\)",
    r"\bat [\w$.<>]+ \(.*:\d+:\d+\)",           # node / v8 frames
    r"\bat [\w$.]+\([\w]+\.java:\d+\)",          # java frames
    r"exception in thread",
    r"node_modules/",
    r"file \".*\.py\", line \d+",
    r"system\.\w+exception",
    r"\"stack\"\s*:\s*\"",
]

_SQL_RES = {engine: [re.compile(p, re.I) for p in pats] for engine, pats in SQL_ERROR_PATTERNS.items()}
_NOSQL_RES = [re.compile(p, re.I) for p in NOSQL_ERROR_PATTERNS]
_TRACE_RES = [re.compile(p, re.I) for p in STACK_TRACE_PATTERNS]


def detect_sql_error(text: str) -> str | None:
    """``"<engine>: <pattern>"`` for the first database error signature in *text*."""
    for engine, patterns in _SQL_RES.items():
        for pat in patterns:
            if pat.search(text):
                return f"{engine}: {pat.pattern}"
    return None


def detect_nosql_error(text: str) -> str | None:
    return next((p.pattern for p in _NOSQL_RES if p.search(text)), None)


def detect_stack_trace(text: str) -> str | None:
    return next((p.pattern for p in _TRACE_RES if p.search(text)), None)


def error_leak(resp: ResponseSnapshot) -> str | None:
    """Why *resp* looks like an unhandled error, or None."""
    if resp.status_code >= 500:
        return f"server error (HTTP {resp.status_code})"
    sql = detect_sql_error(resp.text)
    if sql:
        return f"database error leaked ({sql})"
    nosql = detect_nosql_error(resp.text)
    if nosql:
        return f"NoSQL error leaked ({nosql})"
    trace = detect_stack_trace(resp.text)
    if trace:
        return f"stack trace leaked ({trace})"
    return None


def rate_limit_signal(resp: ResponseSnapshot) -> str | None:
    """429 or a rate-limit header, described; None when there is no sign of throttling."""
    if resp.status_code == 429:
        return "HTTP 429"
    if resp.header("retry-after") is not None:
        return f"Retry-After: {resp.header('retry-after')}"
    for name, value in resp.headers.items():
        if name.startswith(("x-ratelimit-", "x-rate-limit-", "ratelimit-")) or name == "ratelimit":
            return f"{name}: {value}"
    return None


def is_absent(resp: ResponseSnapshot) -> bool:
    """No such endpoint (or no answer at all)."""
    return resp.status_code in (0, 404, 405)


def excerpt(text: str, limit: int = 200) -> str:
    return text[:min(limit, RESPONSE_CAP)]


def walk_items(obj: Any, depth: int = 2) -> Iterator[tuple[str, Any]]:
    """(key, value) pairs of a JSON document, *depth* levels of nesting deep."""
    if isinstance(obj, dict):
        for k, v in obj.items():
            yield k, v
            if depth > 0:
                yield from walk_items(v, depth - 1)
    elif isinstance(obj, list) and depth > 0:
        for item in obj:
            yield from walk_items(item, depth - 1)


def request_evidence(resp: ResponseSnapshot, **extra) -> dict:
    return {
        "endpoint": resp.url,
        "method": resp.method,
        "status": resp.status_code,
        **extra,
        "response_excerpt": excerpt(resp.text),
    }


# ── Probe plumbing ────────────────────────────────────────────────────

@dataclass
class ProbeContext:
    """Everything a probe needs for one run. Built fresh per scenario."""
    client: httpx.AsyncClient
    reporter: SecurityReporter
    store: CredentialStore
    engine: DiscoveryEngine
    auth: AuthHelper

    @property
    def base_url(self) -> str:
        return str(self.client.base_url).rstrip("/")

    @property
    def is_https(self) -> bool:
        return self.base_url.startswith("https://")


class BaseProbe(ABC):
    """
    Abstract base class for all probes.

    Subclasses set ``name`` (CLI identifier), ``title`` (report test name,
    "<Family>: <what>") and ``category`` (taxonomy key), and implement
    ``run``. Every code path through ``run`` reports at least once.
    """

    name: str = "base"
    title: str = ""
    category: str = ""
    description: str = ""

    @abstractmethod
    async def run(self, ctx: ProbeContext) -> None:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
