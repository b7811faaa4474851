"""
Response header probes: hardening headers, version disclosure, CORS and CSP.

A missing control is a warning. A header that is present but configured in
a known-dangerous way is a failure.
"""

import logging
import re

from bs4 import BeautifulSoup

from apisec.config import ATTACKER_ORIGIN, HTML_PARSER, SKIP_SECURE_CHECK
from apisec.models.exchange import ResponseSnapshot
from apisec.probes.base import BaseProbe, ProbeContext, is_absent
from apisec.transport import send

log = logging.getLogger(__name__)

DISCLOSURE_HEADERS = ["server", "x-powered-by", "x-aspnet-version", "x-aspnetmvc-version", "x-generator"]

CORS_PATHS = ["/", "/api/users", "/api/me"]

_VERSION_RE = re.compile(r"\d+(\.\d+)+|/\d")
_NONCE_OR_HASH = re.compile(r"'(nonce|sha256|sha384|sha512)-", re.I)

HEADER_RECOMMENDATIONS = [
    "Set X-Content-Type-Options: nosniff",
    "Set X-Frame-Options: DENY or a CSP frame-ancestors directive",
    "Set Referrer-Policy: strict-origin-when-cross-origin (or stricter)",
    "Set a Permissions-Policy restricting powerful features",
    "Serve HTTPS with Strict-Transport-Security",
]


async def fetch_root(ctx: ProbeContext) -> ResponseSnapshot | None:
    resp = await send(ctx.client, "GET", "/")
    return None if resp.failed else resp


def parse_csp(policy: str) -> dict[str, list[str]]:
    directives: dict[str, list[str]] = {}
    for chunk in policy.split(";"):
        parts = chunk.strip().split()
        if parts:
            directives.setdefault(parts[0].lower(), [p for p in parts[1:]])
    return directives


def csp_of(resp: ResponseSnapshot) -> str | None:
    """CSP from the header, or from a <meta http-equiv> tag on HTML pages."""
    header = resp.header("content-security-policy")
    if header:
        return header
    if resp.is_html:
        soup = BeautifulSoup(resp.text, HTML_PARSER)
        meta = soup.find("meta", attrs={"http-equiv": re.compile("^content-security-policy$", re.I)})
        if meta and meta.get("content"):
            return meta["content"]
    return None


# ── Hardening headers ─────────────────────────────────────────────────

class SecurityHeadersProbe(BaseProbe):
    name = "security-headers"
    title = "Headers: security response headers"
    category = "API7_MISCONFIGURATION"

    def inspect(self, resp: ResponseSnapshot, https: bool) -> tuple[list[str], list[str]]:
        """(missing, weak) descriptions for one response."""
        missing: list[str] = []
        weak: list[str] = []

        xcto = resp.header("x-content-type-options")
        if xcto is None:
            missing.append("X-Content-Type-Options")
        elif xcto.strip().lower() != "nosniff":
            weak.append(f"X-Content-Type-Options: {xcto}")

        xfo = resp.header("x-frame-options")
        csp = parse_csp(csp_of(resp) or "")
        if xfo is None and "frame-ancestors" not in csp:
            missing.append("X-Frame-Options / CSP frame-ancestors")
        elif xfo is not None and xfo.strip().upper() not in ("DENY", "SAMEORIGIN"):
            weak.append(f"X-Frame-Options: {xfo}")

        referrer = resp.header("referrer-policy")
        if referrer is None:
            missing.append("Referrer-Policy")
        elif "unsafe-url" in referrer.lower():
            weak.append(f"Referrer-Policy: {referrer}")

        if resp.header("permissions-policy") is None and resp.header("feature-policy") is None:
            missing.append("Permissions-Policy")

        if https and not SKIP_SECURE_CHECK:
            hsts = resp.header("strict-transport-security")
            if hsts is None:
                missing.append("Strict-Transport-Security")
            elif re.search(r"max-age\s*=\s*0\b", hsts, re.I):
                weak.append(f"Strict-Transport-Security: {hsts}")

        xxp = resp.header("x-xss-protection")
        if xxp is not None and xxp.strip() != "0":
            missing.append(f"X-XSS-Protection should be removed or set to 0 (got {xxp!r})")

        return missing, weak

    async def run(self, ctx: ProbeContext) -> None:
        resp = await fetch_root(ctx)
        if resp is None:
            ctx.reporter.report_skip("target did not answer GET /")
            return

        missing, weak = self.inspect(resp, ctx.is_https)
        if weak:
            ctx.reporter.report_vulnerability(self.category, {
                "endpoint": resp.url, "weak": weak, "missing": missing,
                "issue": "Security headers present with unsafe values",
            })
        if missing:
            ctx.reporter.report_warning(
                "Missing or outdated security headers: " + ", ".join(missing),
                HEADER_RECOMMENDATIONS,
                self.category,
            )
        if not weak and not missing:
            ctx.reporter.report_pass("All recommended security headers are present", self.category)


# ── Version disclosure ────────────────────────────────────────────────

class HeaderDisclosureProbe(BaseProbe):
    name = "header-disclosure"
    title = "Headers: server information disclosure"
    category = "API7_MISCONFIGURATION"

    async def run(self, ctx: ProbeContext) -> None:
        resp = await fetch_root(ctx)
        if resp is None:
            ctx.reporter.report_skip("target did not answer GET /")
            return

        versioned: dict[str, str] = {}
        named: dict[str, str] = {}
        for header in DISCLOSURE_HEADERS:
            value = resp.header(header)
            if value is None:
                continue
            if _VERSION_RE.search(value) or header.startswith("x-aspnet"):
                versioned[header] = value
            else:
                named[header] = value

        if versioned:
            ctx.reporter.report_vulnerability(self.category, {
                "endpoint": resp.url, "headers": versioned,
                "issue": "Server software versions disclosed in response headers",
            }, ["Strip version numbers from Server and X-Powered-By headers"])
        elif named:
            ctx.reporter.report_warning(
                "Server technology disclosed: " + ", ".join(f"{k}: {v}" for k, v in named.items()),
                ["Remove X-Powered-By and genericize the Server header"],
                self.category,
            )
        else:
            ctx.reporter.report_pass("No server technology headers disclosed", self.category)


# ── CORS ──────────────────────────────────────────────────────────────

def cors_issue(resp: ResponseSnapshot, origin: str) -> tuple[str, str] | None:
    """("fail" | "warn", description) for one response to a cross-origin request."""
    acao = resp.header("access-control-allow-origin")
    if acao is None:
        return None
    acao = acao.strip()
    creds = (resp.header("access-control-allow-credentials") or "").strip().lower() == "true"
    if acao == "*" and creds:
        return "fail", "wildcard origin allowed together with credentials"
    if acao == origin and creds:
        return "fail", f"arbitrary origin {origin} reflected with credentials"
    if acao == origin:
        vary = (resp.header("vary") or "").lower()
        note = "" if "origin" in vary else " (Vary: Origin missing)"
        return "warn", f"arbitrary origin {origin} reflected{note}"
    if acao == "*":
        return "warn", "wildcard Access-Control-Allow-Origin"
    return None


class CorsProbe(BaseProbe):
    name = "cors"
    title = "Headers: CORS policy"
    category = "API7_MISCONFIGURATION"

    async def run(self, ctx: ProbeContext) -> None:
        failures: list[dict] = []
        warnings: list[str] = []
        reached = 0

        for path in CORS_PATHS:
            for origin in (ATTACKER_ORIGIN, "null"):
                resp = await send(ctx.client, "GET", path, headers={"Origin": origin})
                if is_absent(resp):
                    continue
                reached += 1
                issue = cors_issue(resp, origin)
                if issue is None:
                    continue
                level, desc = issue
                if level == "fail":
                    failures.append({
                        "endpoint": path, "origin": origin, "issue": desc,
                        "access-control-allow-origin": resp.header("access-control-allow-origin"),
                        "access-control-allow-credentials": resp.header("access-control-allow-credentials"),
                    })
                else:
                    warnings.append(f"{path}: {desc}")

            preflight = await send(ctx.client, "OPTIONS", path, headers={
                "Origin": ATTACKER_ORIGIN,
                "Access-Control-Request-Method": "DELETE",
                "Access-Control-Request-Headers": "authorization",
            })
            if not is_absent(preflight):
                reached += 1
                issue = cors_issue(preflight, ATTACKER_ORIGIN)
                if issue and issue[0] == "fail":
                    failures.append({"endpoint": path, "preflight": True, "issue": issue[1]})
                elif issue:
                    warnings.append(f"{path} (preflight): {issue[1]}")

        if reached == 0:
            ctx.reporter.report_skip("no endpoint answered cross-origin requests")
            return
        if failures:
            ctx.reporter.report_vulnerability(self.category, {"findings": failures}, [
                "Never combine Access-Control-Allow-Credentials with a wildcard or reflected origin",
                "Validate Origin against an explicit allowlist",
            ])
        if warnings:
            ctx.reporter.report_warning(
                "Permissive CORS configuration: " + "; ".join(dict.fromkeys(warnings)),
                ["Restrict Access-Control-Allow-Origin to trusted origins", "Add Vary: Origin"],
                self.category,
            )
        if not failures and not warnings:
            ctx.reporter.report_pass("CORS does not trust arbitrary origins", self.category)


# ── Content-Security-Policy ───────────────────────────────────────────

class CspProbe(BaseProbe):
    name = "csp"
    title = "Headers: Content-Security-Policy"
    category = "API7_MISCONFIGURATION"

    def weaknesses(self, policy: str) -> list[str]:
        directives = parse_csp(policy)
        script = directives.get("script-src", directives.get("default-src"))
        found: list[str] = []
        if script is None:
            found.append("no script-src or default-src directive")
        else:
            if "'unsafe-inline'" in script and not any(_NONCE_OR_HASH.match(s) for s in script):
                found.append("script-src allows 'unsafe-inline'")
            if "'unsafe-eval'" in script:
                found.append("script-src allows 'unsafe-eval'")
            if "*" in script:
                found.append("script-src allows any origin (*)")
        if "frame-ancestors" not in directives:
            found.append("no frame-ancestors directive")
        elif not {"'none'", "'self'"} & set(directives["frame-ancestors"]):
            found.append(f"frame-ancestors is permissive ({' '.join(directives['frame-ancestors'])})")
        return found

    async def run(self, ctx: ProbeContext) -> None:
        resp = await fetch_root(ctx)
        if resp is None:
            ctx.reporter.report_skip("target did not answer GET /")
            return

        policy = csp_of(resp)
        if policy is None:
            report_only = resp.header("content-security-policy-report-only")
            detail = " (only a Report-Only policy is set)" if report_only else ""
            ctx.reporter.report_warning(
                f"No Content-Security-Policy on {resp.url}{detail}",
                ["Define a CSP with script-src 'self' and nonces/hashes for inline code",
                 "Add frame-ancestors 'none' or 'self'"],
                self.category,
            )
            return

        found = self.weaknesses(policy)
        if found:
            ctx.reporter.report_warning(
                "Content-Security-Policy weaknesses: " + "; ".join(found),
                ["Remove 'unsafe-inline' / 'unsafe-eval' and use nonces or hashes",
                 "Restrict script sources to known origins"],
                self.category,
            )
        else:
            ctx.reporter.report_pass(f"Content-Security-Policy is restrictive: {policy}", self.category)
