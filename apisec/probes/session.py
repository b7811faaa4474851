"""
Session and token lifecycle probes: cookie flags, fixation, logout, JWT.
"""

import base64
import json
import logging

from apisec.auth.helper import auth_headers, cookie_pair, parse_set_cookie_flags
from apisec.config import SKIP_SECURE_CHECK
from apisec.crawler.browser import LOGOUT_PATHS
from apisec.models.auth import LoginResult
from apisec.models.discovery import Located
from apisec.probes.base import BaseProbe, ProbeContext, is_absent
from apisec.transport import send

log = logging.getLogger(__name__)

PROTECTED_PATHS = ["/api/me", "/api/profile", "/api/users/me", "/profile", "/me", "/dashboard"]

API_LOGOUT_PATHS = ["/api/logout", "/api/auth/logout", *LOGOUT_PATHS]


# ── Helpers ───────────────────────────────────────────────────────────

def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(s: str) -> bytes:
    s += "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode(s)


def decode_jwt(token: str) -> tuple[dict, dict, str]:
    """Return (header, payload, signature_part) or raise ValueError."""
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("not a JWT")
    try:
        header = json.loads(_b64url_decode(parts[0]))
        payload = json.loads(_b64url_decode(parts[1]))
    except (ValueError, TypeError) as e:
        raise ValueError(f"not a JWT: {e}") from e
    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise ValueError("not a JWT: header/payload are not objects")
    return header, payload, parts[2]


def encode_jwt(header: dict, payload: dict, sig: str = "") -> str:
    h = _b64url_encode(json.dumps(header, separators=(",", ":")).encode())
    p = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode())
    return f"{h}.{p}.{sig}"


def forged_tokens(token: str) -> list[tuple[str, str]]:
    """(label, forged token) variants that a correct verifier must reject."""
    header, payload, sig = decode_jwt(token)
    variants = [
        ("alg:none", encode_jwt({**header, "alg": "none"}, payload)),
        ("alg:None", encode_jwt({**header, "alg": "None"}, payload)),
        ("signature stripped", encode_jwt(header, payload)),
        ("expired (exp=1) with original signature", encode_jwt(header, {**payload, "exp": 1}, sig)),
        ("role=admin with original signature", encode_jwt(header, {**payload, "role": "admin", "isAdmin": True}, sig)),
    ]
    return variants


async def login_for_probe(ctx: ProbeContext) -> LoginResult | None:
    """API login as the stored user, registering them first when needed."""
    user = ctx.store.find_or_create("sec")
    result = await ctx.auth.login(user.identity, user.password)
    if result is None and isinstance(await ctx.auth.register(user), Located):
        result = await ctx.auth.login(user.identity, user.password)
    return result


async def find_protected(ctx: ProbeContext, headers: dict) -> str | None:
    """First path that answers 2xx with credentials and refuses without them."""
    for path in PROTECTED_PATHS:
        authed = await send(ctx.client, "GET", path, headers=headers)
        if not authed.ok:
            continue
        anon = await send(ctx.client, "GET", path)
        if anon.status_code in (401, 403) or 300 <= anon.status_code < 400:
            return path
    return None


# ── Cookie flags ──────────────────────────────────────────────────────

class CookieFlagsProbe(BaseProbe):
    name = "cookie-flags"
    title = "Authentication: session cookie flags"
    category = "API2_AUTH"

    async def run(self, ctx: ProbeContext) -> None:
        result = await login_for_probe(ctx)
        if result is None:
            ctx.reporter.report_skip("could not log in")
            return
        set_cookies = result.response.set_cookies
        if not set_cookies:
            ctx.reporter.report_skip(f"login via {result.path} set no cookies (token-based session)")
            return

        failures: list[dict] = []
        warnings: list[str] = []
        for sc in set_cookies:
            pair = cookie_pair(sc)
            if pair is None:
                continue
            name = pair[0]
            flags = parse_set_cookie_flags(sc)
            if not flags["http_only"]:
                failures.append({"cookie": name, "issue": "HttpOnly not set", "set-cookie": sc})
            if not flags["secure"]:
                if ctx.is_https and not SKIP_SECURE_CHECK:
                    failures.append({"cookie": name, "issue": "Secure not set on HTTPS", "set-cookie": sc})
                else:
                    warnings.append(f"{name}: Secure not set (target served over HTTP)")
            same_site = (flags["same_site"] or "").lower()
            if same_site not in ("lax", "strict"):
                warnings.append(f"{name}: SameSite={flags['same_site'] or 'unset'}")

        if failures:
            ctx.reporter.report_vulnerability(self.category, {"endpoint": result.path, "cookies": failures}, [
                "Set HttpOnly and Secure on every session cookie",
            ])
        if warnings:
            ctx.reporter.report_warning(
                "Session cookie hardening: " + "; ".join(warnings),
                ["Use SameSite=Lax or Strict on session cookies", "Serve the application over HTTPS"],
                self.category,
            )
        if not failures and not warnings:
            ctx.reporter.report_pass("Session cookies carry HttpOnly, Secure and SameSite", self.category)


# ── Session fixation ──────────────────────────────────────────────────

class SessionFixationProbe(BaseProbe):
    name = "session-fixation"
    title = "Authentication: session fixation"
    category = "API2_AUTH"

    async def run(self, ctx: ProbeContext) -> None:
        first = await login_for_probe(ctx)
        if first is None:
            ctx.reporter.report_skip("could not log in")
            return

        pre: dict[str, str] = {}
        for path in ("/", "/login"):
            resp = await send(ctx.client, "GET", path)
            for sc in resp.set_cookies:
                pair = cookie_pair(sc)
                if pair:
                    pre[pair[0]] = pair[1]
        if not pre:
            ctx.reporter.report_pass("No session cookie is issued before login", self.category)
            return

        user = ctx.store.find_or_create("sec")
        body = {"email": user.identity, "username": user.identity, "password": user.password}
        planted = {"Cookie": "; ".join(f"{k}={v}" for k, v in pre.items())}
        if first.content_type == "json":
            resp = await send(ctx.client, "POST", first.path, json_body=body, headers=planted)
        else:
            resp = await send(ctx.client, "POST", first.path, form=body, headers=planted)

        post = dict(p for p in (cookie_pair(sc) for sc in resp.set_cookies) if p)
        reused = [name for name, value in post.items() if pre.get(name) == value]
        if reused:
            ctx.reporter.report_vulnerability(self.category, {
                "endpoint": first.path,
                "preLoginCookies": sorted(pre),
                "reusedAfterLogin": reused,
                "issue": "Session identifier issued before login is kept after login",
            }, ["Regenerate the session identifier on every privilege change"])
        elif not post:
            ctx.reporter.report_warning(
                f"Login did not rotate pre-login cookies ({', '.join(sorted(pre))})",
                ["Issue a fresh session cookie on successful login"],
                self.category,
            )
        else:
            ctx.reporter.report_pass("Session cookies are rotated on login", self.category)


# ── Logout ────────────────────────────────────────────────────────────

class LogoutInvalidationProbe(BaseProbe):
    name = "logout-invalidation"
    title = "Authentication: logout invalidates the session"
    category = "API2_AUTH"

    async def run(self, ctx: ProbeContext) -> None:
        session = await ctx.auth.ensure_session()
        if session is None or session.is_empty:
            ctx.reporter.report_skip("could not establish an authenticated session")
            return
        headers = auth_headers(session)

        protected = await find_protected(ctx, headers)
        if protected is None:
            ctx.reporter.report_skip("no endpoint distinguishes authenticated requests")
            return

        logout_path = None
        for path in API_LOGOUT_PATHS:
            resp = await send(ctx.client, "POST", path, headers=headers)
            if is_absent(resp):
                resp = await send(ctx.client, "GET", path, headers=headers)
            if not is_absent(resp):
                logout_path = path
                break
        if logout_path is None:
            ctx.reporter.report_skip("no logout endpoint found")
            return

        replay = await send(ctx.client, "GET", protected, headers=headers)
        if replay.ok:
            ctx.reporter.report_vulnerability(self.category, {
                "logout": logout_path,
                "protectedEndpoint": protected,
                "statusAfterLogout": replay.status_code,
                "issue": "Credentials still accepted after logout",
            }, ["Invalidate server-side sessions and revoke tokens on logout"])
        else:
            ctx.reporter.report_pass(
                f"{protected} refused the old credentials after {logout_path} (HTTP {replay.status_code})",
                self.category,
            )


# ── JWT ───────────────────────────────────────────────────────────────

class JwtIntegrityProbe(BaseProbe):
    name = "jwt-integrity"
    title = "Authentication: JWT signature and expiry enforcement"
    category = "API2_AUTH"

    async def run(self, ctx: ProbeContext) -> None:
        result = await login_for_probe(ctx)
        if result is None or not result.token:
            ctx.reporter.report_skip("login did not return a token")
            return
        try:
            variants = forged_tokens(result.token)
        except ValueError:
            ctx.reporter.report_skip("session token is not a JWT")
            return

        protected = await find_protected(ctx, {"Authorization": f"Bearer {result.token}"})
        if protected is None:
            ctx.reporter.report_skip("no endpoint distinguishes authenticated requests")
            return

        accepted: list[dict] = []
        for label, forged in variants:
            resp = await send(ctx.client, "GET", protected, headers={"Authorization": f"Bearer {forged}"})
            if resp.ok:
                accepted.append({"attack": label, "status": resp.status_code, "token": forged})

        if accepted:
            ctx.reporter.report_vulnerability(self.category, {
                "protectedEndpoint": protected,
                "acceptedForgeries": accepted,
                "issue": "Forged or expired JWTs were accepted",
            }, ["Pin the accepted algorithm and always verify signature and exp"])
        else:
            ctx.reporter.report_pass(
                f"{protected} rejected {len(variants)} forged JWT variants", self.category,
            )
