"""Tests for the injection, traversal and XSS probes."""

import json

import httpx
import pytest

from apisec.models.results import ProbeStatus
from apisec.probes.base import detect_nosql_error, detect_sql_error, detect_stack_trace, error_leak, rate_limit_signal
from apisec.models.exchange import ResponseSnapshot
from apisec.probes.injection import NoSqlInjectionProbe, SqlInjectionLoginProbe, SqlInjectionQueryProbe
from apisec.probes.traversal import PathTraversalProbe, traversal_issue
from apisec.probes.xss import ReflectedXssProbe

from conftest import not_found


def statuses(ctx):
    return [r.status for r in ctx.reporter.results]


class TestDetectors:
    """Shared signature tables."""

    def test_sql_engines(self):
        assert detect_sql_error("You have an error in your SQL syntax near ''").startswith("mysql")
        assert detect_sql_error("sqlite3.OperationalError: unrecognized token").startswith("sqlite")
        assert detect_sql_error("ORA-01756: quoted string not properly terminated").startswith("oracle")
        assert detect_sql_error("invalid credentials") is None

    def test_nosql_and_traces(self):
        assert detect_nosql_error("MongoServerError: unknown operator: $foo")
        assert detect_nosql_error("MongoError: unknown top level operator: $where")
        assert detect_nosql_error("CastError: Cast to ObjectId failed")
        assert detect_nosql_error("unsupported field $where") is None
        assert detect_nosql_error("bson payloads are not accepted") is None
        assert detect_stack_trace('Traceback (most recent call last):\n  File "app.py", line 3')
        assert detect_stack_trace("    at Object.<anonymous> (/app/server.js:10:5)")
        assert detect_stack_trace("all good") is None

    def test_error_leak_order(self):
        assert error_leak(ResponseSnapshot(status_code=502)) == "server error (HTTP 502)"
        assert "database error" in error_leak(ResponseSnapshot(status_code=400, text="SQLSTATE[42000]"))
        assert error_leak(ResponseSnapshot(status_code=400, text='{"error":"bad"}')) is None

    def test_rate_limit_signal(self):
        assert rate_limit_signal(ResponseSnapshot(status_code=429)) == "HTTP 429"
        assert rate_limit_signal(ResponseSnapshot(status_code=200, headers={"x-ratelimit-remaining": "0"}))
        assert rate_limit_signal(ResponseSnapshot(status_code=200, headers={"retry-after": "5"}))
        assert rate_limit_signal(ResponseSnapshot(status_code=401)) is None


class TestSqlInjectionLogin:
    """Login endpoint fed with SQL payloads."""

    @pytest.mark.asyncio
    async def test_clean_401_passes(self, make_ctx):
        def handler(request):
            if request.url.path == "/api/login":
                return httpx.Response(401, json={"error": "Invalid credentials"})
            return not_found(request)

        ctx = make_ctx(handler)
        await SqlInjectionLoginProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.PASS]

    @pytest.mark.asyncio
    async def test_database_error_fails(self, make_ctx):
        def handler(request):
            if request.url.path == "/api/login":
                body = json.loads(request.content or b"{}")
                if "'" in str(body.get("email", "")):
                    return httpx.Response(500, text="sqlite3.OperationalError: near \"OR\": syntax error")
                return httpx.Response(400)
            return not_found(request)

        ctx = make_ctx(handler)
        await SqlInjectionLoginProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert result.evidence["endpoint"] == "/api/login"
        assert result.evidence["findings"][0]["issue"] == "server error (HTTP 500)"

    @pytest.mark.asyncio
    async def test_token_for_payload_fails(self, make_ctx):
        def handler(request):
            if request.url.path == "/login":
                return httpx.Response(200, json={"token": "granted"})
            return not_found(request)

        ctx = make_ctx(handler)
        await SqlInjectionLoginProbe().run(ctx)
        finding = ctx.reporter.results[0].evidence["findings"][0]
        assert finding["issue"].startswith("authentication bypass")

    @pytest.mark.asyncio
    async def test_no_login_endpoint_skips(self, make_ctx):
        ctx = make_ctx(not_found)
        await SqlInjectionLoginProbe().run(ctx)
        assert ctx.reporter.results[0].description == "Test skipped: no login endpoint found"


class TestSqlInjectionQuery:
    """Search parameters."""

    @pytest.mark.asyncio
    async def test_engine_error_in_search(self, make_ctx):
        def handler(request):
            if request.url.path == "/api/search":
                q = request.url.params.get("q", "")
                if "'" in q:
                    return httpx.Response(200, text="Warning: mysql_fetch_array() expects parameter 1")
                return httpx.Response(200, json=[])
            return not_found(request)

        ctx = make_ctx(handler)
        await SqlInjectionQueryProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert result.evidence["tested"] == ["/api/search?q="]

    @pytest.mark.asyncio
    async def test_nothing_searchable_skips(self, make_ctx):
        ctx = make_ctx(not_found)
        await SqlInjectionQueryProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.SKIP]


class TestNoSqlInjection:
    """Operator objects in the login body."""

    @pytest.mark.asyncio
    async def test_operator_bypass_fails(self, make_ctx):
        def handler(request):
            if request.url.path == "/api/login":
                body = json.loads(request.content or b"{}")
                if isinstance(body.get("password"), dict):
                    return httpx.Response(200, json={"token": "mongo-bypass"})
                return httpx.Response(401)
            return not_found(request)

        ctx = make_ctx(handler)
        await NoSqlInjectionProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.FAIL]

    @pytest.mark.asyncio
    async def test_validation_error_passes(self, make_ctx):
        def handler(request):
            if request.url.path == "/api/login":
                return httpx.Response(400, json={"error": "email must be a string"})
            return not_found(request)

        ctx = make_ctx(handler)
        await NoSqlInjectionProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.PASS]

    @pytest.mark.asyncio
    async def test_echoed_operator_in_clean_400_passes(self, make_ctx):
        def handler(request):
            if request.url.path == "/api/login":
                return httpx.Response(400, json={"error": "unsupported field $where"})
            return not_found(request)

        ctx = make_ctx(handler)
        await NoSqlInjectionProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.PASS]

    @pytest.mark.asyncio
    async def test_engine_error_fails(self, make_ctx):
        def handler(request):
            if request.url.path == "/api/login":
                return httpx.Response(400, json={"error": "MongoServerError: unknown top level operator: $where"})
            return not_found(request)

        ctx = make_ctx(handler)
        await NoSqlInjectionProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert "NoSQL" in result.evidence["findings"][0]["issue"]


class TestPathTraversal:
    """File parameters."""

    def test_signatures(self):
        assert traversal_issue("root:x:0:0:root:/root:/bin/bash") == "/etc/passwd content"
        assert "filesystem error" in traversal_issue("Error: ENOENT: no such file or directory")
        assert traversal_issue("not found") is None

    @pytest.mark.asyncio
    async def test_passwd_leak_fails(self, make_ctx):
        def handler(request):
            if request.url.path == "/api/download":
                name = request.url.params.get("file", "")
                if "passwd" in name:
                    return httpx.Response(200, text="root:x:0:0:root:/root:/bin/bash\n")
                return httpx.Response(200, text="%PDF-1.4")
            return not_found(request)

        ctx = make_ctx(handler)
        await PathTraversalProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert {f["issue"] for f in result.evidence["findings"]} == {"/etc/passwd content"}

    @pytest.mark.asyncio
    async def test_no_file_endpoint_skips(self, make_ctx):
        ctx = make_ctx(not_found)
        await PathTraversalProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.SKIP]


class TestReflectedXss:
    """Marker payloads in query parameters."""

    @pytest.mark.asyncio
    async def test_raw_reflection_in_html_fails(self, make_ctx):
        def handler(request):
            if request.url.path == "/search":
                q = request.url.params.get("q", "")
                return httpx.Response(200, text=f"<html><body>Results for {q}</body></html>",
                                      headers={"Content-Type": "text/html"})
            return not_found(request)

        ctx = make_ctx(handler)
        await ReflectedXssProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.FAIL]

    @pytest.mark.asyncio
    async def test_json_echo_passes(self, make_ctx):
        def handler(request):
            if request.url.path == "/api/search":
                return httpx.Response(200, json={"q": request.url.params.get("q", "")})
            return not_found(request)

        ctx = make_ctx(handler)
        await ReflectedXssProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.PASS]
