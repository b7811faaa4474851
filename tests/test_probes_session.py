"""Tests for session lifecycle probes and CSRF."""

import json

import httpx
import pytest

import apisec.probes.session as session_mod
from apisec.models.results import ProbeStatus
from apisec.probes.csrf import CsrfProbe
from apisec.probes.session import (
    CookieFlagsProbe,
    JwtIntegrityProbe,
    LogoutInvalidationProbe,
    SessionFixationProbe,
    decode_jwt,
    encode_jwt,
    forged_tokens,
)

from conftest import not_found

TOKEN = encode_jwt({"alg": "HS256", "typ": "JWT"}, {"sub": "42", "role": "user"}, "c2lnbmF0dXJl")


def statuses(ctx):
    return [r.status for r in ctx.reporter.results]


def login_route(set_cookie=None, token=None):
    """Handler fragment: POST /api/login succeeds with the given cookie and token."""
    def handler(request):
        if request.method == "POST" and request.url.path == "/api/login":
            headers = {"Set-Cookie": set_cookie} if set_cookie else {}
            return httpx.Response(200, json={"token": token} if token else {"ok": True}, headers=headers)
        return not_found(request)
    return handler


class TestJwtHelpers:
    """Decoding and forging."""

    def test_decode(self):
        header, payload, sig = decode_jwt(TOKEN)
        assert header["alg"] == "HS256"
        assert payload == {"sub": "42", "role": "user"}
        assert sig == "c2lnbmF0dXJl"

    def test_not_a_jwt(self):
        for token in ("opaque-session-id", "a.b.c", "a.b"):
            with pytest.raises(ValueError):
                decode_jwt(token)

    def test_forged_variants(self):
        variants = dict(forged_tokens(TOKEN))
        assert len(variants) == 5
        header, _, sig = decode_jwt(variants["alg:none"])
        assert header["alg"] == "none" and sig == ""
        assert decode_jwt(variants["expired (exp=1) with original signature"])[1]["exp"] == 1
        assert decode_jwt(variants["role=admin with original signature"])[2] == "c2lnbmF0dXJl"


class TestCookieFlags:
    """Set-Cookie attributes on the login response."""

    @pytest.mark.asyncio
    async def test_missing_httponly_fails(self, make_ctx):
        ctx = make_ctx(login_route(set_cookie="sid=abc; Path=/"))
        await CookieFlagsProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.FAIL, ProbeStatus.WARNING]
        assert ctx.reporter.results[0].evidence["cookies"][0]["issue"] == "HttpOnly not set"
        assert "SameSite=unset" in ctx.reporter.results[1].description

    @pytest.mark.asyncio
    async def test_hardened_cookie_passes(self, make_ctx):
        ctx = make_ctx(login_route(set_cookie="sid=abc; HttpOnly; Secure; SameSite=Strict"))
        await CookieFlagsProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.PASS]

    @pytest.mark.asyncio
    async def test_secure_required_on_https(self, make_ctx, monkeypatch):
        monkeypatch.setattr(session_mod, "SKIP_SECURE_CHECK", False)
        ctx = make_ctx(login_route(set_cookie="sid=abc; HttpOnly; SameSite=Lax"), base_url="https://target.test")
        await CookieFlagsProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.FAIL]
        assert ctx.reporter.results[0].evidence["cookies"][0]["issue"] == "Secure not set on HTTPS"

    @pytest.mark.asyncio
    async def test_token_only_skips(self, make_ctx):
        ctx = make_ctx(login_route(token=TOKEN))
        await CookieFlagsProbe().run(ctx)
        assert "token-based session" in ctx.reporter.results[0].description


class TestSessionFixation:
    """Pre-login cookies planted on the login request."""

    @staticmethod
    def handler(keep_planted: bool, pre_cookie: bool = True):
        issued = {"n": 0}

        def handle(request):
            if request.method == "GET" and request.url.path == "/":
                headers = {"Set-Cookie": "sid=pre-login; Path=/"} if pre_cookie else {}
                return httpx.Response(200, text="<html></html>", headers=headers)
            if request.method == "POST" and request.url.path == "/api/login":
                planted = request.headers.get("cookie", "")
                if keep_planted and "sid=pre-login" in planted:
                    return httpx.Response(200, json={"ok": True}, headers={"Set-Cookie": "sid=pre-login"})
                issued["n"] += 1
                return httpx.Response(200, json={"ok": True}, headers={"Set-Cookie": f"sid=fresh-{issued['n']}"})
            return not_found(request)

        return handle

    @pytest.mark.asyncio
    async def test_reused_identifier_fails(self, make_ctx):
        ctx = make_ctx(self.handler(keep_planted=True))
        await SessionFixationProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert result.evidence["reusedAfterLogin"] == ["sid"]

    @pytest.mark.asyncio
    async def test_rotated_passes(self, make_ctx):
        ctx = make_ctx(self.handler(keep_planted=False))
        await SessionFixationProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.PASS]
        assert ctx.reporter.results[0].description == "Session cookies are rotated on login"

    @pytest.mark.asyncio
    async def test_no_pre_login_cookie_passes(self, make_ctx):
        ctx = make_ctx(self.handler(keep_planted=True, pre_cookie=False))
        await SessionFixationProbe().run(ctx)
        assert ctx.reporter.results[0].description == "No session cookie is issued before login"


class ProtectedApp:
    """Token login, /api/me behind it, optional working logout."""

    def __init__(self, revoke_on_logout: bool, token: str = "opaque-token", accept_any_bearer: bool = False):
        self.revoke_on_logout = revoke_on_logout
        self.token = token
        self.accept_any_bearer = accept_any_bearer
        self.revoked = False
        self.logouts = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and path == "/api/login":
            return httpx.Response(200, json={"token": self.token})
        if path == "/api/me":
            auth = request.headers.get("authorization", "")
            good = auth == f"Bearer {self.token}" or (self.accept_any_bearer and auth.startswith("Bearer "))
            if good and not self.revoked:
                return httpx.Response(200, json={"id": 42})
            return httpx.Response(401, json={"error": "unauthorized"})
        if request.method == "POST" and path == "/api/logout":
            self.logouts += 1
            self.revoked = self.revoke_on_logout
            return httpx.Response(204)
        return not_found(request)


class TestLogoutInvalidation:
    """Old credentials replayed after logout."""

    @pytest.mark.asyncio
    async def test_still_valid_after_logout_fails(self, make_ctx):
        app = ProtectedApp(revoke_on_logout=False)
        ctx = make_ctx(app)
        await LogoutInvalidationProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert result.evidence["logout"] == "/api/logout"
        assert result.evidence["protectedEndpoint"] == "/api/me"
        assert app.logouts == 1

    @pytest.mark.asyncio
    async def test_revoked_passes(self, make_ctx):
        ctx = make_ctx(ProtectedApp(revoke_on_logout=True))
        await LogoutInvalidationProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.PASS
        assert "(HTTP 401)" in result.description

    @pytest.mark.asyncio
    async def test_no_logout_endpoint_skips(self, make_ctx):
        app = ProtectedApp(revoke_on_logout=True)

        def without_logout(request):
            return not_found(request) if "logout" in request.url.path else app(request)

        ctx = make_ctx(without_logout)
        await LogoutInvalidationProbe().run(ctx)
        assert ctx.reporter.results[0].description == "Test skipped: no logout endpoint found"


class TestJwtIntegrity:
    """Forged tokens against a protected endpoint."""

    @pytest.mark.asyncio
    async def test_unverified_signature_fails(self, make_ctx):
        ctx = make_ctx(ProtectedApp(revoke_on_logout=False, token=TOKEN, accept_any_bearer=True))
        await JwtIntegrityProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert len(result.evidence["acceptedForgeries"]) == 5

    @pytest.mark.asyncio
    async def test_verified_signature_passes(self, make_ctx):
        ctx = make_ctx(ProtectedApp(revoke_on_logout=False, token=TOKEN))
        await JwtIntegrityProbe().run(ctx)
        assert ctx.reporter.results[0].description == "/api/me rejected 5 forged JWT variants"

    @pytest.mark.asyncio
    async def test_opaque_token_skips(self, make_ctx):
        ctx = make_ctx(ProtectedApp(revoke_on_logout=False))
        await JwtIntegrityProbe().run(ctx)
        assert ctx.reporter.results[0].description == "Test skipped: session token is not a JWT"


class TestCsrf:
    """Cookie sessions replayed from a foreign origin."""

    @staticmethod
    def app(check_origin: bool, set_cookie: str | None = "sid=abc; HttpOnly"):
        seen: list[dict] = []

        def handle(request):
            if request.method == "POST" and request.url.path == "/api/login":
                headers = {"Set-Cookie": set_cookie} if set_cookie else {}
                return httpx.Response(200, json={"token": "t"}, headers=headers)
            if request.method == "POST" and request.url.path == "/api/profile":
                seen.append(dict(request.headers))
                if check_origin and request.headers.get("origin") != "http://target.test":
                    return httpx.Response(403, json={"error": "bad origin"})
                return httpx.Response(200, json=json.loads(request.content))
            return not_found(request)

        return handle, seen

    @pytest.mark.asyncio
    async def test_foreign_origin_accepted_fails(self, make_ctx):
        handler, seen = self.app(check_origin=False)
        ctx = make_ctx(handler)
        await CsrfProbe().run(ctx)
        result = ctx.reporter.results[0]
        assert result.status is ProbeStatus.FAIL
        assert [f["csrfToken"] for f in result.evidence["findings"]] == ["<omitted>", "invalid-csrf-token"]
        assert seen[0]["cookie"] == "sid=abc"
        assert seen[0]["origin"] == "https://evil.example.com"
        assert seen[1]["x-csrf-token"] == "invalid-csrf-token"

    @pytest.mark.asyncio
    async def test_origin_check_passes(self, make_ctx):
        handler, _ = self.app(check_origin=True)
        ctx = make_ctx(handler)
        await CsrfProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.PASS]

    @pytest.mark.asyncio
    async def test_token_only_session_skips(self, make_ctx):
        handler, seen = self.app(check_origin=False, set_cookie=None)
        ctx = make_ctx(handler)
        await CsrfProbe().run(ctx)
        assert statuses(ctx) == [ProbeStatus.SKIP]
        assert seen == []
