"""
Where reports go: Markdown and JSON attachments plus report annotations.

An ``ArtifactSink`` without a directory keeps everything in memory, which
is what the unit tests use.
"""

import json
import logging
from itertools import count
from pathlib import Path

from pydantic import BaseModel

from apisec.models.results import ProbeResult, ProbeStatus, RiskLevel

log = logging.getLogger(__name__)

STATUS_SYMBOLS = {
    ProbeStatus.PASS: "✅",
    ProbeStatus.FAIL: "❌",
    ProbeStatus.SKIP: "⏭️",
    ProbeStatus.WARNING: "⚠️",
}

RISK_SYMBOLS = {
    RiskLevel.CRITICAL: "🔴",
    RiskLevel.HIGH: "🟠",
    RiskLevel.MEDIUM: "🟡",
    RiskLevel.LOW: "🟢",
    RiskLevel.INFO: "ℹ️",
}


class Annotation(BaseModel):
    type: str
    description: str


class Attachment(BaseModel):
    name: str
    content_type: str
    body: str


class ArtifactSink:
    """Collects attachments and annotations for one scenario."""

    def __init__(self, directory: Path | str | None = None) -> None:
        self.directory = Path(directory) if directory is not None else None
        self.attachments: list[Attachment] = []
        self.annotations: list[Annotation] = []
        self._seq = count(1)

    def attach(self, stem: str, body: str, content_type: str = "text/markdown") -> Attachment:
        ext = "json" if content_type == "application/json" else "md"
        att = Attachment(name=f"{stem}-{next(self._seq)}.{ext}", content_type=content_type, body=body)
        self.attachments.append(att)
        if self.directory is not None:
            self.directory.mkdir(parents=True, exist_ok=True)
            (self.directory / att.name).write_text(body, encoding="utf-8")
        return att

    def annotate(self, type_: str, description: str) -> None:
        self.annotations.append(Annotation(type=type_, description=description))

    def flush_annotations(self) -> Path | None:
        """Write annotations.json next to the attachments."""
        if self.directory is None:
            return None
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / "annotations.json"
        path.write_text(
            json.dumps([a.model_dump() for a in self.annotations], indent=2),
            encoding="utf-8",
        )
        return path


def render_markdown(result: ProbeResult) -> str:
    """Human-readable report for one result."""
    lines = [
        "# Security Test Report",
        "",
        f"## {STATUS_SYMBOLS[result.status]} Test Result: {result.status.value}",
        "",
        f"**Test:** {result.test_name}",
        f"**Timestamp:** {result.timestamp}",
        f"**OWASP Category:** {result.owasp_category}",
    ]
    if result.risk_level:
        lines.append(f"**Risk Level:** {RISK_SYMBOLS[result.risk_level]} {result.risk_level.value}")

    lines += ["", "## Description", "", result.description]

    if result.vulnerability:
        lines += ["", "## ⚠️ Vulnerability Detected", "", result.vulnerability]

    if result.evidence is not None:
        lines += ["", "## Evidence", "", "```json", json.dumps(result.evidence, indent=2, default=str), "```"]

    if result.recommendations:
        lines += ["", "## 📋 Recommendations", ""]
        lines += [f"{i}. {rec}" for i, rec in enumerate(result.recommendations, 1)]

    if result.remediation_steps:
        lines += ["", "## 🔧 Remediation Steps", ""]
        lines += list(result.remediation_steps)

    if result.references:
        lines += ["", "## 📚 References", ""]
        lines += [f"- {ref}" for ref in result.references]

    lines += ["", "---", "*Generated by Security Test Reporter*", ""]
    return "\n".join(lines)
