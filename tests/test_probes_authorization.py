"""Tests for the authorization probes."""

import json

import httpx
import pytest

from apisec.models.results import ProbeStatus
from apisec.probes.authorization import (
    DataExposureProbe,
    ErrorHandlingProbe,
    FunctionLevelAuthProbe,
    IdorProbe,
    sensitive_fields,
)

from conftest import not_found


def statuses(ctx):
    return [r.status for r in ctx.reporter.results]


class App:
    """Token login plus a route table; remembers who logged in."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.identity = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/api/login":
            self.identity = json.loads(request.content)["email"]
            return httpx.Response(200, json={"token": "user-token"})
        route = self.routes.get(request.url.path)
        if route is not None:
            return route(self, request)
        return not_found(request)


class TestSensitiveFields:
    def test_nested_and_case_insensitive(self):
        body = {"data": {"user": {"passwordHash": "$2b$10$abc", "email": "a@b.co"}}}
        assert sensitive_fields(body) == ["passwordHash"]

    def test_empty_values_ignored(self):
        assert sensitive_fields({"password": "", "apiKey": None, "ssn": []}) == []

    def test_lists(self):
        assert sensitive_fields([{"id": 1, "salt": "x"}, {"id": 2, "salt": "y"}]) == ["salt"]


class TestIdor:
    """Guessed ids for objects owned by others."""

    @pytest.mark.asyncio
    async def test_foreign_object_fails(self, make_ctx):
        app = App({"/api/users/2": lambda a, r: httpx.Response(200, json={"id": 2, "email": "victim@example.com"})})
        ctx = make_ctx(app)
        await IdorProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert [o["endpoint"] for o in result.evidence["objects"]] == ["/api/users/2"]
        assert result.evidence["actingUser"] == app.identity

    @pytest.mark.asyncio
    async def test_own_object_is_not_a_finding(self, make_ctx):
        app = App({"/api/users/1": lambda a, r: httpx.Response(200, json={"id": 1, "email": a.identity})})
        ctx = make_ctx(app)
        await IdorProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.PASS]

    @pytest.mark.asyncio
    async def test_refusals_pass(self, make_ctx):
        forbidden = lambda a, r: httpx.Response(403, json={"error": "forbidden"})
        app = App({f"/api/accounts/{i}": forbidden for i in ("1", "2", "999", "other-user-id")})
        ctx = make_ctx(app)
        await IdorProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.PASS
        assert "(4 requests)" in result.description

    @pytest.mark.asyncio
    async def test_no_session_skips(self, make_ctx):
        ctx = make_ctx(not_found)
        await IdorProbe().run(ctx)
        assert ctx.reporter.results[0].description == "Test skipped: could not establish an authenticated session"

    @pytest.mark.asyncio
    async def test_no_object_endpoints_skips(self, make_ctx):
        ctx = make_ctx(App())
        await IdorProbe().run(ctx)
        assert ctx.reporter.results[0].description.startswith("Test skipped: no object endpoints answered")


class TestDataExposure:
    """Secrets in user responses."""

    @pytest.mark.asyncio
    async def test_password_hash_fails(self, make_ctx):
        app = App({"/api/me": lambda a, r: httpx.Response(200, json={"email": a.identity, "password_hash": "$2b$..."})})
        ctx = make_ctx(app)
        await DataExposureProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert result.evidence["findings"] == [{"endpoint": "/api/me", "sensitiveFields": ["password_hash"]}]

    @pytest.mark.asyncio
    async def test_clean_profile_passes(self, make_ctx):
        app = App({"/api/profile": lambda a, r: httpx.Response(200, json={"email": a.identity, "name": "x"})})
        ctx = make_ctx(app)
        await DataExposureProbe().run(ctx)
        assert ctx.reporter.results[0].description == "No sensitive fields in 1 user responses"

    @pytest.mark.asyncio
    async def test_html_only_skips(self, make_ctx):
        page = lambda a, r: httpx.Response(200, text="<html>profile</html>", headers={"Content-Type": "text/html"})
        ctx = make_ctx(App({"/api/me": page}))
        await DataExposureProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.SKIP]


class TestFunctionLevelAuth:
    """Admin endpoints as a regular user and anonymously."""

    @pytest.mark.asyncio
    async def test_open_admin_endpoint_fails(self, make_ctx):
        app = App({"/api/admin/users": lambda a, r: httpx.Response(200, json=[{"id": 1}])})
        ctx = make_ctx(app)
        await FunctionLevelAuthProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert {f["as"] for f in result.evidence["findings"]} == {"regular user", "anonymous"}

    @pytest.mark.asyncio
    async def test_login_page_is_not_access(self, make_ctx):
        page = lambda a, r: httpx.Response(200, text="<html>Sign in</html>", headers={"Content-Type": "text/html"})
        app = App({"/admin/users": page, "/api/admin/settings": lambda a, r: httpx.Response(403)})
        ctx = make_ctx(app)
        await FunctionLevelAuthProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.PASS
        assert result.description.startswith("2 admin endpoints")

    @pytest.mark.asyncio
    async def test_absent_admin_surface_skips(self, make_ctx):
        ctx = make_ctx(App())
        await FunctionLevelAuthProbe().run(ctx)
        assert ctx.reporter.results[0].description == "Test skipped: no admin endpoints found"


class TestErrorHandling:
    """Malformed ids, with or without a session."""

    @pytest.mark.asyncio
    async def test_stack_trace_fails(self, make_ctx):
        def handler(request):
            if request.url.path == "/api/users/abc":
                return httpx.Response(400, text='Traceback (most recent call last):\n  File "views.py", line 12')
            return not_found(request)

        ctx = make_ctx(handler)
        await ErrorHandlingProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert result.evidence["total"] == 1
        assert result.evidence["findings"][0]["issue"].startswith("stack trace leaked")

    @pytest.mark.asyncio
    async def test_clean_404s_pass(self, make_ctx):
        ctx = make_ctx(not_found)
        await ErrorHandlingProbe().run(ctx)
        assert ctx.reporter.results[0].description == "30 malformed-id requests were handled cleanly"

    @pytest.mark.asyncio
    async def test_unreachable_skips(self, make_ctx):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        ctx = make_ctx(refuse)
        await ErrorHandlingProbe().run(ctx)
        assert ctx.reporter.results[0].description == "Test skipped: target did not answer"
