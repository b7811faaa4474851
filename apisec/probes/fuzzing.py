"""
Input fuzzing: boundary values, Unicode tricks and malformed JSON against the
user-creation endpoints.

Every case carries ``expect_valid``. The server fails the case when it
crashes (5xx), leaks a stack trace, or accepts (2xx) a value it should have
rejected.
"""

import logging
from typing import Any, NamedTuple

from apisec.config import DEFAULT_PASSWORD
from apisec.probes.base import BaseProbe, ProbeContext, error_leak, is_absent
from apisec.transport import send

log = logging.getLogger(__name__)

FUZZ_ENDPOINTS = ["/api/users", "/api/auth/register", "/api/register"]


class _Omit:
    """Field left out of the body entirely."""

    def __repr__(self) -> str:
        return "<omitted>"


OMIT = _Omit()


class FuzzCase(NamedTuple):
    name: str
    field: str
    value: Any
    expect_valid: bool


BOUNDARY_CASES = [
    # integers
    FuzzCase("int32_max", "age", 2147483647, False),
    FuzzCase("int32_min", "age", -2147483648, False),
    FuzzCase("int32_max_plus_one", "age", 2147483648, False),
    FuzzCase("int64_max", "value", 9223372036854775807, False),
    FuzzCase("zero", "age", 0, True),
    FuzzCase("negative_one", "age", -1, False),
    FuzzCase("positive_one", "age", 1, True),
    # floats
    FuzzCase("float_max", "price", 1.7976931348623157e308, False),
    FuzzCase("float_min", "price", 5e-324, True),
    FuzzCase("infinity", "price", float("inf"), False),
    FuzzCase("neg_infinity", "price", float("-inf"), False),
    FuzzCase("nan", "price", float("nan"), False),
    # strings
    FuzzCase("empty_string", "username", "", False),
    FuzzCase("max_username_256", "username", "a" * 256, False),
    FuzzCase("very_long_10k", "bio", "y" * 10_000, False),
    FuzzCase("very_long_100k", "description", "z" * 100_000, False),
    FuzzCase("only_spaces", "name", "   ", False),
    FuzzCase("newlines_only", "name", "\n\n\n", False),
    # emails
    FuzzCase("min_email", "email", "a@b.co", True),
    FuzzCase("long_email_65_local", "email", "a" * 65 + "@example.com", False),
    FuzzCase("long_email_254_total", "email", "a" * 240 + "@example.com", False),
    # arrays and nulls
    FuzzCase("large_array_1000", "tags", ["tag"] * 1000, False),
    FuzzCase("null_middle_name", "middleName", None, True),
    FuzzCase("omitted_suffix", "suffix", OMIT, True),
    FuzzCase("null_email", "email", None, False),
    FuzzCase("omitted_password", "password", OMIT, False),
    # type confusion
    FuzzCase("string_true", "active", "true", False),
    FuzzCase("number_one_as_bool", "active", 1, False),
    # dates
    FuzzCase("invalid_date_feb30", "birthdate", "2024-02-30", False),
    FuzzCase("invalid_date_month13", "birthdate", "2024-13-01", False),
]

UNICODE_CASES = [
    FuzzCase("nfd_form", "name", "cafe\u0301", True),
    FuzzCase("cyrillic_a_email", "email", "\u0430dmin@example.com", False),
    FuzzCase("greek_omicron_username", "username", "g\u03bf\u03bfgle", False),
    FuzzCase("zero_width_space", "email", "admin\u200b@example.com", False),
    FuzzCase("zero_width_joiner", "username", "ad\u200dmin", False),
    FuzzCase("bidi_override", "username", "user\u202egnp.exe", False),
    FuzzCase("fullwidth_admin", "username", "\uff41\uff44\uff4d\uff49\uff4e", False),
    FuzzCase("null_byte", "username", "admin\x00", False),
    FuzzCase("emoji", "name", "\U0001f600\U0001f601", True),
    FuzzCase("combining_overload", "name", "Z" + "\u0335\u0336\u0337" * 50, False),
]


def _deep_nesting(levels: int) -> str:
    return '{"a":' * levels + "1" + "}" * levels


MALFORMED_JSON = [
    ("unclosed_brace", '{"email": "test@example.com"'),
    ("trailing_comma", '{"email": "test@example.com",}'),
    ("missing_comma", '{"email": "test@example.com" "password": "test"}'),
    ("single_quotes", "{'email': 'test@example.com'}"),
    ("unquoted_keys", '{email: "test@example.com"}'),
    ("empty_body", ""),
    ("null_literal", "null"),
    ("undefined_literal", "undefined"),
    ("plain_text", "this is not json"),
    ("xml_content", '<?xml version="1.0"?><root></root>'),
    ("number_as_json", "12345"),
    ("deep_nesting_100", _deep_nesting(100)),
    ("deep_nesting_5000", _deep_nesting(5000)),
    ("utf8_bom", '\ufeff{"email": "test@example.com"}'),
    ("invalid_escape", '{"email": "test\\xexample.com"}'),
    ("incomplete_unicode", '{"email": "\\u00"}'),
    ("nan_literal", '{"email": "a@b.co", "price": NaN}'),
]


def case_body(case: FuzzCase, email: str) -> dict:
    body: dict[str, Any] = {"email": email, "password": DEFAULT_PASSWORD}
    if case.value is OMIT:
        body.pop(case.field, None)
    else:
        body[case.field] = case.value
    return body


def case_issue(status: int, leak: str | None, expect_valid: bool) -> str | None:
    if leak:
        return leak
    if not expect_valid and 200 <= status < 300:
        return "invalid value accepted"
    return None


class _TableFuzzProbe(BaseProbe):
    """Runs a table of field-level cases against the first endpoint that exists."""

    category = "API8_INJECTION"
    cases: list[FuzzCase] = []
    recommendations: list[str] = []

    async def run(self, ctx: ProbeContext) -> None:
        for endpoint in FUZZ_ENDPOINTS:
            findings: list[dict] = []
            handled = 0
            reached = False
            for case in self.cases:
                user = ctx.store.create_random("fuzz", persist=False)
                resp = await send(ctx.client, "POST", endpoint, json_body=case_body(case, user.email))
                if is_absent(resp):
                    if not reached:
                        break
                    continue
                reached = True
                issue = case_issue(resp.status_code, error_leak(resp), case.expect_valid)
                if issue:
                    findings.append({
                        "test": case.name,
                        "field": case.field,
                        "value": repr(case.value)[:80],
                        "status": resp.status_code,
                        "issue": issue,
                    })
                else:
                    handled += 1
            if reached:
                self._report(ctx, endpoint, findings, handled)
                return

        ctx.reporter.report_skip(f"no endpoint found for input fuzzing (tried {', '.join(FUZZ_ENDPOINTS)})")

    def _report(self, ctx: ProbeContext, endpoint: str, findings: list[dict], handled: int) -> None:
        if findings:
            ctx.reporter.report_vulnerability(self.category, {
                "endpoint": endpoint,
                "vulnerabilitiesFound": len(findings),
                "examples": findings[:5],
                "passedTests": handled,
                "issue": f"Input testing revealed {len(findings)} validation issues",
            }, self.recommendations)
        else:
            ctx.reporter.report_pass(
                f"{endpoint} handled {handled} {self.name} cases correctly", self.category,
            )


class BoundaryValueProbe(_TableFuzzProbe):
    name = "boundary-values"
    title = "Fuzzing: boundary values"
    cases = BOUNDARY_CASES
    recommendations = [
        "Implement strict input validation with min/max bounds",
        "Validate ranges before processing",
        "Return consistent 400/422 errors for invalid input",
    ]


class UnicodeInputProbe(_TableFuzzProbe):
    name = "unicode-input"
    title = "Fuzzing: Unicode normalization and homographs"
    cases = UNICODE_CASES
    recommendations = [
        "Normalize identifiers (NFKC) before uniqueness checks",
        "Reject zero-width, bidi-control and mixed-script identifiers",
    ]


class MalformedJsonProbe(BaseProbe):
    name = "malformed-json"
    title = "Fuzzing: malformed JSON bodies"
    category = "API8_INJECTION"

    async def run(self, ctx: ProbeContext) -> None:
        for endpoint in FUZZ_ENDPOINTS:
            probe = await send(ctx.client, "POST", endpoint, json_body={})
            if is_absent(probe):
                continue

            findings: list[dict] = []
            for label, raw in MALFORMED_JSON:
                resp = await send(ctx.client, "POST", endpoint, content=raw,
                                  headers={"Content-Type": "application/json"})
                if resp.failed:
                    continue
                issue = case_issue(resp.status_code, error_leak(resp), expect_valid=False)
                if issue:
                    findings.append({"test": label, "status": resp.status_code, "issue": issue})

            if findings:
                ctx.reporter.report_vulnerability(self.category, {
                    "endpoint": endpoint,
                    "findings": findings,
                }, ["Reject unparseable bodies with 400 before any processing",
                    "Limit JSON nesting depth"])
            else:
                ctx.reporter.report_pass(
                    f"{endpoint} rejected {len(MALFORMED_JSON)} malformed bodies cleanly", self.category,
                )
            return

        ctx.reporter.report_skip(f"no endpoint found for JSON fuzzing (tried {', '.join(FUZZ_ENDPOINTS)})")
