"""
Scenario runner: one probe per scenario, run strictly in sequence.

Each scenario gets its own HTTP client, credential store handle, discovery
engine, auth helper, reporter and artifact sink, so nothing (cookies
included) leaks from one probe into the next.
"""

import asyncio
import json
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Optional

import httpx
from pydantic import BaseModel

from apisec.auth.helper import AuthHelper
from apisec.config import BASE_URL, BROWSER_ENABLED, REPORT_DIR, SCENARIO_TIMEOUT, USERS_FIXTURE
from apisec.crawler.browser import BrowserSession
from apisec.discovery.engine import DiscoveryEngine, default_strategies
from apisec.models.results import ProbeResult, ProbeStatus
from apisec.probes.base import BaseProbe, ProbeContext
from apisec.reporting.reporter import SecurityReporter
from apisec.reporting.sink import ArtifactSink
from apisec.storage.credentials import CredentialStore
from apisec.transport import build_client

log = logging.getLogger(__name__)


class ScenarioOutcome(BaseModel):
    name: str
    title: str
    status: str                       # passed | failed | skipped | error
    results: list[ProbeResult] = []
    error: Optional[str] = None
    duration_ms: float = 0.0


def scenario_status(results: tuple[ProbeResult, ...] | list[ProbeResult], error: str | None = None) -> str:
    if any(r.status is ProbeStatus.FAIL for r in results):
        return "failed"
    if error is not None:
        return "error"
    if results and all(r.status is ProbeStatus.SKIP for r in results):
        return "skipped"
    return "passed"


async def run_scenario(
    probe: BaseProbe,
    *,
    base_url: str = BASE_URL,
    report_dir: Path | None = REPORT_DIR,
    browser: bool = BROWSER_ENABLED,
    timeout: float = SCENARIO_TIMEOUT,
    store_path: Path = USERS_FIXTURE,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ScenarioOutcome:
    sink = ArtifactSink(Path(report_dir) / probe.name if report_dir is not None else None)
    reporter = SecurityReporter(probe.title or probe.name, sink=sink)
    browser_factory = partial(BrowserSession, base_url) if browser else None

    error: str | None = None
    start = time.perf_counter()
    async with build_client(base_url, transport=transport) as client:
        store = CredentialStore(store_path)
        engine = DiscoveryEngine(client, default_strategies(browser_factory))
        auth = AuthHelper(client, engine, store, browser_factory)
        ctx = ProbeContext(client=client, reporter=reporter, store=store, engine=engine, auth=auth)
        try:
            await asyncio.wait_for(probe.run(ctx), timeout)
        except asyncio.TimeoutError:
            error = f"timed out after {timeout:.0f}s"
            log.error("%s %s", probe.name, error)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            log.exception("%s raised", probe.name)

    sink.flush_annotations()
    results = reporter.results
    if not results and error is None:
        error = "probe reported no result"
    outcome = ScenarioOutcome(
        name=probe.name,
        title=reporter.test_name,
        status=scenario_status(results, error),
        results=list(results),
        error=error,
        duration_ms=(time.perf_counter() - start) * 1000,
    )
    log.info("[%s] %s (%s)", outcome.status.upper(), probe.name, reporter.summary())
    return outcome


async def run_scenarios(
    probes: list[BaseProbe],
    *,
    base_url: str = BASE_URL,
    report_dir: Path | None = REPORT_DIR,
    browser: bool = BROWSER_ENABLED,
    timeout: float = SCENARIO_TIMEOUT,
    store_path: Path = USERS_FIXTURE,
    transport: httpx.AsyncBaseTransport | None = None,
    on_outcome: Callable[[ScenarioOutcome], None] | None = None,
) -> list[ScenarioOutcome]:
    """Run every probe in order; write ``summary.json`` when *report_dir* is set."""
    outcomes: list[ScenarioOutcome] = []
    for probe in probes:
        outcome = await run_scenario(
            probe,
            base_url=base_url,
            report_dir=report_dir,
            browser=browser,
            timeout=timeout,
            store_path=store_path,
            transport=transport,
        )
        outcomes.append(outcome)
        if on_outcome is not None:
            on_outcome(outcome)

    if report_dir is not None:
        write_summary(outcomes, Path(report_dir) / "summary.json", base_url)
    return outcomes


def summarize(outcomes: list[ScenarioOutcome]) -> dict:
    by_status = {s: 0 for s in ("passed", "failed", "skipped", "error")}
    findings = 0
    warnings = 0
    for o in outcomes:
        by_status[o.status] = by_status.get(o.status, 0) + 1
        findings += sum(1 for r in o.results if r.status is ProbeStatus.FAIL)
        warnings += sum(1 for r in o.results if r.status is ProbeStatus.WARNING)
    return {"total": len(outcomes), **by_status, "vulnerabilities": findings, "warnings": warnings}


def write_summary(outcomes: list[ScenarioOutcome], path: Path, base_url: str = BASE_URL) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    report = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "target": base_url,
        "summary": summarize(outcomes),
        "scenarios": [o.model_dump(mode="json") for o in outcomes],
    }
    path.write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")
    log.info("summary written to %s", path)
    return path


def exit_code(outcomes: list[ScenarioOutcome]) -> int:
    return 1 if any(o.status == "failed" for o in outcomes) else 0
