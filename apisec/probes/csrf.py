import logging

from apisec.config import ATTACKER_ORIGIN
from apisec.probes.base import BaseProbe, ProbeContext, is_absent
from apisec.probes.session import login_for_probe
from apisec.transport import send

log = logging.getLogger(__name__)

STATE_CHANGING = [
    ("POST", "/api/profile", {"name": "csrf-probe"}),
    ("PATCH", "/api/settings", {"theme": "dark"}),
    ("PUT", "/api/users/me", {"name": "csrf-probe"}),
    ("POST", "/api/transfer", {"amount": 1, "toAccount": "000000"}),
]

# None = header omitted
CSRF_TOKENS = [None, "invalid-csrf-token"]


class CsrfProbe(BaseProbe):
    """Replays state-changing requests with the session cookie from an attacker's origin."""

    name = "csrf"
    title = "Authentication: cross-site request forgery"
    category = "API2_AUTH"

    async def run(self, ctx: ProbeContext) -> None:
        result = await login_for_probe(ctx)
        if result is None:
            ctx.reporter.report_skip("could not log in")
            return
        if not result.cookie_header:
            ctx.reporter.report_skip("session is token-only; browsers do not attach it cross-site")
            return

        reached = 0
        findings: list[dict] = []
        for method, path, body in STATE_CHANGING:
            for token in CSRF_TOKENS:
                headers = {
                    "Cookie": result.cookie_header,
                    "Origin": ATTACKER_ORIGIN,
                    "Referer": f"{ATTACKER_ORIGIN}/",
                }
                if token is not None:
                    headers["X-CSRF-Token"] = token
                resp = await send(ctx.client, method, path, json_body=body, headers=headers)
                if is_absent(resp):
                    break
                reached += 1
                if resp.ok:
                    findings.append({
                        "endpoint": path, "method": method, "status": resp.status_code,
                        "csrfToken": token or "<omitted>", "origin": ATTACKER_ORIGIN,
                    })

        if reached == 0:
            ctx.reporter.report_skip("no state-changing endpoint found")
        elif findings:
            ctx.reporter.report_vulnerability(self.category, {
                "findings": findings,
                "issue": "Cookie-authenticated state changes accepted from a foreign origin without a valid CSRF token",
            }, ["Require a per-session CSRF token on state-changing requests",
                "Reject requests whose Origin is not the application's own",
                "Set SameSite=Lax or Strict on session cookies"])
        else:
            ctx.reporter.report_pass("Cross-site state-changing requests were refused", self.category)
