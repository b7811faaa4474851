"""
Resource consumption probes: request bursts, oversized bodies, repeated
bad logins.

Missing throttling is reported as a warning: the absence of a control is
not proof of exploitability. Server crashes are failures.
"""

import logging
from abc import abstractmethod

from apisec.config import LOCKOUT_ATTEMPTS, RATE_LIMIT_ATTEMPTS
from apisec.models.exchange import ResponseSnapshot
from apisec.probes.base import BaseProbe, ProbeContext, error_leak, is_absent, rate_limit_signal
from apisec.transport import send

log = logging.getLogger(__name__)

RATE_LIMIT_RECOMMENDATIONS = [
    "Implement rate limiting on authentication and public endpoints",
    "Return 429 Too Many Requests with a Retry-After header when limits are hit",
    "Expose X-RateLimit-Limit / X-RateLimit-Remaining headers",
    "Consider progressive delays or CAPTCHA after repeated failures",
]

PUBLIC_ENDPOINTS = ["/api/docs", "/api/health", "/api/status", "/"]

PAYLOAD_SIZES_MB = [1, 10]


class _BurstProbe(BaseProbe):
    """Fire ``attempts`` requests in sequence and look for any sign of throttling."""

    category = "API4_RATE_LIMIT"

    def __init__(self, attempts: int = RATE_LIMIT_ATTEMPTS) -> None:
        self.attempts = attempts

    @abstractmethod
    async def target(self, ctx: ProbeContext) -> tuple[str, str] | None:
        """(method, path) to hammer, or None when nothing suitable exists."""

    async def request(self, ctx: ProbeContext, method: str, path: str, i: int) -> ResponseSnapshot:
        return await send(ctx.client, method, path)

    async def run(self, ctx: ProbeContext) -> None:
        target = await self.target(ctx)
        if target is None:
            ctx.reporter.report_skip("no endpoint available for the burst test")
            return
        method, path = target

        answered = 0
        statuses: dict[int, int] = {}
        for i in range(self.attempts):
            resp = await self.request(ctx, method, path, i)
            if resp.failed:
                continue
            answered += 1
            statuses[resp.status_code] = statuses.get(resp.status_code, 0) + 1
            signal = rate_limit_signal(resp)
            if signal:
                ctx.reporter.report_pass(
                    f"Rate limiting active on {method} {path} after {i + 1} requests ({signal})",
                    self.category,
                )
                return

        if answered == 0:
            ctx.reporter.report_skip(f"{method} {path} never answered during the burst test")
            return

        ctx.reporter.report_warning(
            f"No rate limiting detected during burst test ({self.attempts} requests) "
            f"on {method} {path}; statuses seen: {statuses}",
            RATE_LIMIT_RECOMMENDATIONS,
            self.category,
        )


class LoginRateLimitProbe(_BurstProbe):
    name = "rate-limit-login"
    title = "Rate limit: login endpoint burst"

    async def target(self, ctx):
        path = await ctx.auth.find_login_endpoint()
        return ("POST", path) if path else None

    async def request(self, ctx, method, path, i):
        return await send(ctx.client, method, path, json_body={
            "email": f"ratelimit{i}@example.com",
            "username": f"ratelimit{i}@example.com",
            "password": f"wrong-password-{i}",
        })


class PublicRateLimitProbe(_BurstProbe):
    name = "rate-limit-public"
    title = "Rate limit: public endpoint burst"

    async def target(self, ctx):
        for path in PUBLIC_ENDPOINTS:
            resp = await send(ctx.client, "GET", path)
            if not is_absent(resp):
                return ("GET", path)
        return None


class PayloadSizeProbe(BaseProbe):
    name = "payload-size"
    title = "Abuse: oversized request bodies"
    category = "API4_RATE_LIMIT"

    async def run(self, ctx: ProbeContext) -> None:
        path = await ctx.auth.find_login_endpoint()
        if path is None:
            ctx.reporter.report_skip("no login endpoint to send oversized payloads to")
            return

        user = ctx.store.find_or_create("sec")
        crashed: list[dict] = []
        accepted: list[dict] = []
        rejected: list[str] = []

        for size_mb in PAYLOAD_SIZES_MB:
            body = {"email": user.identity, "password": user.password, "extraData": "A" * (size_mb * 1024 * 1024)}
            resp = await send(ctx.client, "POST", path, json_body=body)
            if resp.failed:
                # connection dropped by a proxy or body limit; counts as rejected
                rejected.append(f"{size_mb}MB: {resp.error}")
            elif error_leak(resp):
                crashed.append({"sizeMB": size_mb, "status": resp.status_code, "issue": error_leak(resp)})
            elif resp.ok:
                accepted.append({"sizeMB": size_mb, "status": resp.status_code})
            else:
                rejected.append(f"{size_mb}MB: HTTP {resp.status_code}")

        if crashed:
            ctx.reporter.report_vulnerability(self.category, {
                "endpoint": path, "crashes": crashed, "accepted": accepted,
                "issue": "Oversized payloads caused server errors",
            }, ["Enforce a request body size limit (e.g. 1MB) before parsing"])
        elif accepted:
            ctx.reporter.report_warning(
                f"{path} accepted oversized payloads: "
                + ", ".join(f"{a['sizeMB']}MB -> {a['status']}" for a in accepted),
                ["Return 413 Payload Too Large above a configured body size"],
                self.category,
            )
        else:
            ctx.reporter.report_pass(f"{path} rejected oversized payloads ({'; '.join(rejected)})", self.category)


class BruteForceLockoutProbe(BaseProbe):
    name = "bruteforce-lockout"
    title = "Authentication: brute-force throttling and lockout"
    category = "API2_AUTH"

    def __init__(self, attempts: int = LOCKOUT_ATTEMPTS) -> None:
        self.attempts = attempts

    async def run(self, ctx: ProbeContext) -> None:
        user = ctx.store.find_or_create("sec")
        statuses: list[int] = []
        for i in range(self.attempts):
            result = await ctx.auth.attempt_login(user.identity, f"bad-password-{i}")
            if result is None:
                ctx.reporter.report_skip("no login endpoint found")
                return
            resp = result.response
            statuses.append(resp.status_code)
            if resp.status_code == 423 or rate_limit_signal(resp):
                ctx.reporter.report_pass(
                    f"Repeated failed logins throttled after {i + 1} attempts (HTTP {resp.status_code})",
                    self.category,
                )
                return

        ctx.reporter.report_warning(
            f"{self.attempts} failed logins for one account did not trigger throttling or lockout "
            f"(statuses: {sorted(set(statuses))})",
            ["Lock or throttle accounts after repeated failures",
             "Return 429 with Retry-After on authentication endpoints"],
            self.category,
        )
