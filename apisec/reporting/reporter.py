import json
import logging
from collections import Counter
from collections.abc import Mapping
from typing import Any

from apisec.models.results import ProbeResult, ProbeStatus, RiskLevel, TaxonomyEntry
from apisec.reporting.sink import STATUS_SYMBOLS, ArtifactSink, render_markdown
from apisec.reporting.taxonomy import TAXONOMY, resolve_category

log = logging.getLogger(__name__)

SEVERITY_LABELS = {
    RiskLevel.CRITICAL: "blocker",
    RiskLevel.HIGH: "critical",
    RiskLevel.MEDIUM: "normal",
    RiskLevel.LOW: "minor",
    RiskLevel.INFO: "trivial",
}

EPIC = "OWASP API Security Top 10"


class SecurityReporter:
    """
    Result collector for one scenario.

    Every ``report_*`` call appends an immutable ``ProbeResult``, logs a
    one-line summary and attaches a Markdown report to the sink. Failures
    take their text from the taxonomy, so probes only supply the key and
    the evidence.
    """

    def __init__(
        self,
        test_name: str,
        sink: ArtifactSink | None = None,
        taxonomy: Mapping[str, TaxonomyEntry] = TAXONOMY,
    ) -> None:
        self.test_name = test_name
        self.sink = sink if sink is not None else ArtifactSink()
        self.taxonomy = taxonomy
        self._results: list[ProbeResult] = []

    # ── Reporting ─────────────────────────────────────────────────────

    def report_vulnerability(
        self,
        category_key: str,
        evidence: Any,
        extra_recommendations: list[str] | None = None,
    ) -> ProbeResult:
        entry = self.taxonomy[category_key]
        result = ProbeResult(
            test_name=self.test_name,
            status=ProbeStatus.FAIL,
            owasp_category=entry.name,
            vulnerability=entry.name,
            risk_level=entry.risk_level,
            description=entry.description,
            evidence=evidence,
            recommendations=(*entry.recommendations, *(extra_recommendations or [])),
            remediation_steps=entry.remediation_steps,
            references=entry.references,
        )
        self._record(result)
        self.sink.annotate("security-vulnerability", f"{entry.risk_level.value}: {entry.name}")
        self._annotate(result)
        if evidence is not None:
            self.sink.attach("evidence", json.dumps(evidence, indent=2, default=str), "application/json")
        return result

    def report_pass(self, description: str, category: str | None = None) -> ProbeResult:
        result = ProbeResult(
            test_name=self.test_name,
            status=ProbeStatus.PASS,
            owasp_category=resolve_category(category, self.taxonomy),
            description=description,
        )
        self._record(result)
        self._annotate(result)
        return result

    def report_skip(self, reason: str) -> ProbeResult:
        result = ProbeResult(
            test_name=self.test_name,
            status=ProbeStatus.SKIP,
            owasp_category="N/A",
            description=f"Test skipped: {reason}",
        )
        self._record(result)
        return result

    def report_warning(
        self,
        description: str,
        recommendations: list[str] | None = None,
        category: str | None = None,
    ) -> ProbeResult:
        result = ProbeResult(
            test_name=self.test_name,
            status=ProbeStatus.WARNING,
            owasp_category=resolve_category(category, self.taxonomy),
            description=description,
            recommendations=tuple(recommendations or ()),
            risk_level=RiskLevel.LOW,
        )
        self._record(result)
        self.sink.annotate("security-warning", description)
        self._annotate(result)
        return result

    # ── Queries ───────────────────────────────────────────────────────

    @property
    def results(self) -> tuple[ProbeResult, ...]:
        return tuple(self._results)

    @property
    def has_failures(self) -> bool:
        return any(r.status is ProbeStatus.FAIL for r in self._results)

    def counts(self) -> Counter:
        return Counter(r.status for r in self._results)

    def summary(self) -> str:
        c = self.counts()
        return (
            f"Security Tests Summary: ✅ {c[ProbeStatus.PASS]} passed, "
            f"❌ {c[ProbeStatus.FAIL]} failed, ⚠️ {c[ProbeStatus.WARNING]} warnings, "
            f"⏭️ {c[ProbeStatus.SKIP]} skipped"
        )

    # ── Internals ─────────────────────────────────────────────────────

    def _record(self, result: ProbeResult) -> None:
        self._results.append(result)
        symbol = STATUS_SYMBOLS[result.status]
        if result.status is ProbeStatus.FAIL:
            log.warning("%s %s | Risk: %s | %s", symbol, result.test_name,
                        result.risk_level.value, result.owasp_category)
        elif result.status is ProbeStatus.SKIP:
            log.info("%s %s | Reason: %s", symbol, result.test_name, result.description)
        else:
            log.info("%s %s | %s", symbol, result.test_name, result.description)
        self.sink.attach("security-report", render_markdown(result))

    def _annotate(self, result: ProbeResult) -> None:
        if result.risk_level:
            self.sink.annotate("severity", SEVERITY_LABELS[result.risk_level])
        if result.owasp_category and result.owasp_category != "N/A":
            self.sink.annotate("tag", result.owasp_category.split(":")[0])
            self.sink.annotate("epic", EPIC)
        for idx, ref in enumerate(result.references, 1):
            self.sink.annotate("link", f"OWASP Reference {idx}: {ref}")
        self.sink.annotate("feature", result.test_name.split(":")[0].strip())
