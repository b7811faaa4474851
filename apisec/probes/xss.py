"""Reflected XSS: marker payloads echoed unescaped into HTML responses."""

from apisec.auth.helper import auth_headers
from apisec.probes.base import BaseProbe, ProbeContext, is_absent, request_evidence
from apisec.transport import send

XSS_PAYLOADS = [
    "<script>alert('apisec-xss')</script>",
    "<img src=x onerror=alert('apisec-xss')>",
    "<svg/onload=alert('apisec-xss')>",
    "\"><script>alert('apisec-xss')</script>",
    "javascript:alert('apisec-xss')",
]

REFLECTION_TARGETS = [
    ("/search", "q"),
    ("/api/search", "q"),
    ("/api/users", "q"),
    ("/login", "error"),
    ("/", "q"),
]


class ReflectedXssProbe(BaseProbe):
    name = "xss-reflected"
    title = "Input: reflected cross-site scripting"
    category = "API8_INJECTION"

    async def run(self, ctx: ProbeContext) -> None:
        headers = auth_headers(await ctx.auth.ensure_session())
        findings: list[dict] = []
        reached = 0

        for path, param in REFLECTION_TARGETS:
            for payload in XSS_PAYLOADS:
                resp = await send(ctx.client, "GET", path, params={param: payload}, headers=headers)
                if is_absent(resp):
                    break
                reached += 1
                if resp.is_html and payload in resp.text:
                    findings.append(request_evidence(resp, parameter=param, payload=payload,
                                                     issue="payload reflected without encoding"))

        if reached == 0:
            ctx.reporter.report_skip("no endpoint reflected query parameters")
        elif findings:
            ctx.reporter.report_vulnerability(self.category, {"findings": findings}, [
                "HTML-encode user input on output",
                "Add a Content-Security-Policy that forbids inline scripts",
            ])
        else:
            ctx.reporter.report_pass(f"No unencoded reflection across {reached} requests", self.category)
