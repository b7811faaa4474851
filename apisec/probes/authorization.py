"""
Authorization probes run as an ordinary, freshly registered user.

- idor: objects that belong to someone else, fetched by guessing ids
- data-exposure: secrets serialized into user-facing responses
- function-level-auth: admin endpoints reachable without the admin role
- error-handling: malformed ids that surface stack traces or engine errors
"""

import logging

from apisec.auth.helper import auth_headers
from apisec.models.auth import AuthContext
from apisec.probes.base import BaseProbe, ProbeContext, error_leak, excerpt, is_absent, walk_items
from apisec.transport import send

log = logging.getLogger(__name__)

OBJECT_COLLECTIONS = ["/api/users", "/api/accounts", "/api/transactions", "/api/cards", "/api/orders"]
GUESSED_IDS = ["1", "2", "999", "other-user-id"]

EXPOSURE_PATHS = ["/api/users/me", "/api/me", "/api/profile", "/api/users", "/api/accounts"]
SENSITIVE_KEYS = frozenset({
    "password", "passwordhash", "password_hash", "hashedpassword", "hashed_password",
    "salt", "secret", "apikey", "api_key", "ssn", "cvv", "pin", "otp_secret", "totp_secret",
})

ADMIN_ENDPOINTS = [
    "/api/admin/users",
    "/api/admin/settings",
    "/api/admin/logs",
    "/api/admin/dashboard",
    "/admin/users",
]

MALFORMED_IDS = ["abc", "'", "-1", "99999999999999999999", "%00", "..%2f", "{{7*7}}", "1;DROP", "null", "[]"]
ERROR_COLLECTIONS = ["/api/users", "/api/accounts", "/api/transactions"]


async def _session(ctx: ProbeContext) -> AuthContext | None:
    session = await ctx.auth.ensure_session()
    if session is None or session.is_empty:
        ctx.reporter.report_skip("could not establish an authenticated session")
        return None
    return session


def sensitive_fields(body) -> list[str]:
    """Sensitive keys carrying a non-empty value anywhere in the first three levels."""
    found: dict[str, None] = {}
    for key, value in walk_items(body, depth=3):
        if key.lower() in SENSITIVE_KEYS and value not in (None, "", [], {}):
            found.setdefault(key, None)
    return list(found)


# ── BOLA / IDOR ───────────────────────────────────────────────────────

class IdorProbe(BaseProbe):
    name = "idor"
    title = "Authorization: object-level access (IDOR)"
    category = "API1_BOLA"

    async def run(self, ctx: ProbeContext) -> None:
        session = await _session(ctx)
        if session is None:
            return
        headers = auth_headers(session)
        own = (session.identity or "").lower()

        reached = 0
        findings: list[dict] = []
        for collection in OBJECT_COLLECTIONS:
            for object_id in GUESSED_IDS:
                path = f"{collection}/{object_id}"
                resp = await send(ctx.client, "GET", path, headers=headers)
                if is_absent(resp):
                    continue
                reached += 1
                body = resp.json_body()
                if not resp.ok or not isinstance(body, dict) or not body:
                    continue
                if own and own in resp.text.lower():
                    continue
                findings.append({"endpoint": path, "status": resp.status_code, "response_excerpt": excerpt(resp.text)})

        if reached == 0:
            ctx.reporter.report_skip("no object endpoints answered (tried " + ", ".join(OBJECT_COLLECTIONS) + ")")
        elif findings:
            ctx.reporter.report_vulnerability(self.category, {
                "actingUser": session.identity,
                "objects": findings,
                "issue": f"{len(findings)} objects owned by other principals were returned",
            })
        else:
            ctx.reporter.report_pass(
                f"Guessed object ids were refused or belonged to the caller ({reached} requests)", self.category,
            )


# ── Excessive data exposure ───────────────────────────────────────────

class DataExposureProbe(BaseProbe):
    name = "data-exposure"
    title = "Authorization: sensitive data in responses"
    category = "API3_DATA_EXPOSURE"

    async def run(self, ctx: ProbeContext) -> None:
        session = await _session(ctx)
        if session is None:
            return
        headers = auth_headers(session)

        inspected = 0
        findings: list[dict] = []
        for path in EXPOSURE_PATHS:
            resp = await send(ctx.client, "GET", path, headers=headers)
            body = resp.json_body()
            if not resp.ok or body is None:
                continue
            inspected += 1
            fields = sensitive_fields(body)
            if fields:
                findings.append({"endpoint": path, "sensitiveFields": fields})

        if inspected == 0:
            ctx.reporter.report_skip("no user endpoint returned JSON")
        elif findings:
            ctx.reporter.report_vulnerability(self.category, {
                "findings": findings,
                "issue": "Sensitive fields are serialized into API responses",
            })
        else:
            ctx.reporter.report_pass(f"No sensitive fields in {inspected} user responses", self.category)


# ── Function-level authorization ──────────────────────────────────────

class FunctionLevelAuthProbe(BaseProbe):
    name = "function-level-auth"
    title = "Authorization: admin functions as a regular user"
    category = "API5_BFLA"

    async def run(self, ctx: ProbeContext) -> None:
        session = await _session(ctx)
        if session is None:
            return
        headers = auth_headers(session)

        present = 0
        findings: list[dict] = []
        for path in ADMIN_ENDPOINTS:
            as_user = await send(ctx.client, "GET", path, headers=headers)
            anonymous = await send(ctx.client, "GET", path)
            if is_absent(as_user) and is_absent(anonymous):
                continue
            present += 1
            # an HTML login page served with 200 is not access
            for label, resp in (("regular user", as_user), ("anonymous", anonymous)):
                if resp.ok and resp.json_body() is not None:
                    findings.append({"endpoint": path, "as": label, "status": resp.status_code,
                                     "response_excerpt": excerpt(resp.text)})

        if present == 0:
            ctx.reporter.report_skip("no admin endpoints found")
        elif findings:
            ctx.reporter.report_vulnerability(self.category, {
                "findings": findings,
                "issue": "Administrative endpoints answered without the admin role",
            })
        else:
            ctx.reporter.report_pass(f"{present} admin endpoints refused a regular user", self.category)


# ── Error handling ────────────────────────────────────────────────────

class ErrorHandlingProbe(BaseProbe):
    name = "error-handling"
    title = "Misconfiguration: error handling for malformed ids"
    category = "API7_MISCONFIGURATION"

    async def run(self, ctx: ProbeContext) -> None:
        session = await ctx.auth.ensure_session()
        headers = auth_headers(session)

        reached = 0
        findings: list[dict] = []
        for collection in ERROR_COLLECTIONS:
            for bad_id in MALFORMED_IDS:
                resp = await send(ctx.client, "GET", f"{collection}/{bad_id}", headers=headers)
                if resp.failed or resp.status_code == 405:
                    continue
                reached += 1
                leak = error_leak(resp)
                if leak:
                    findings.append({"endpoint": f"{collection}/{bad_id}", "status": resp.status_code,
                                     "issue": leak, "response_excerpt": excerpt(resp.text)})

        if reached == 0:
            ctx.reporter.report_skip("target did not answer")
        elif findings:
            ctx.reporter.report_vulnerability(self.category, {
                "findings": findings[:10],
                "total": len(findings),
                "issue": "Malformed identifiers produced unhandled errors",
            }, ["Validate path parameters and return 400/404 with a generic message"])
        else:
            ctx.reporter.report_pass(f"{reached} malformed-id requests were handled cleanly", self.category)
