"""
Run-level report: a Rich console rendering of every scenario, or the same
data as JSON.

Usage:
    from apisec.reporting.summary import generate_report
    generate_report(outcomes, fmt="console")
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from apisec.models.results import ProbeStatus
from apisec.runner import ScenarioOutcome, summarize, write_summary

STATUS_STYLES = {
    "passed": "green",
    "failed": "red bold",
    "skipped": "dim",
    "error": "yellow",
}

RISK_STYLES = {
    "CRITICAL": "red bold",
    "HIGH": "red",
    "MEDIUM": "yellow",
    "LOW": "cyan",
    "INFO": "dim",
}


# ── Console (Rich) output ────────────────────────────────────────────────────


def _report_console(outcomes: list[ScenarioOutcome], console: Console | None = None):
    console = console or Console()
    summary = summarize(outcomes)

    console.print()
    console.print(Panel.fit(
        "[bold]API Security Test Report[/bold]",
        subtitle=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
    ))

    summary_table = Table(title="Summary", show_header=False, box=None, padding=(0, 2))
    summary_table.add_column(style="bold")
    summary_table.add_column(justify="right")
    summary_table.add_row("Scenarios", str(summary["total"]))
    summary_table.add_row("Passed", f"[green]{summary['passed']}[/green]")
    summary_table.add_row(
        "Failed",
        f"[green]{summary['failed']}[/green]" if summary["failed"] == 0 else f"[red bold]{summary['failed']}[/red bold]",
    )
    summary_table.add_row("Skipped", f"[dim]{summary['skipped']}[/dim]")
    summary_table.add_row("Errors", f"[yellow]{summary['error']}[/yellow]")
    summary_table.add_row("Warnings", f"[yellow]{summary['warnings']}[/yellow]")
    console.print(summary_table)
    console.print()

    findings = [
        (o, r) for o in outcomes for r in o.results if r.status is ProbeStatus.FAIL
    ]
    if findings:
        console.print("[red bold]⚠ VULNERABILITIES FOUND[/red bold]")
        vuln_table = Table(show_lines=True)
        vuln_table.add_column("Risk", width=9)
        vuln_table.add_column("Scenario", width=24)
        vuln_table.add_column("Category", width=40)
        for o, r in findings:
            risk = r.risk_level.value if r.risk_level else "?"
            vuln_table.add_row(Text(risk, style=RISK_STYLES.get(risk, "")), o.name, r.owasp_category)
        console.print(vuln_table)
        console.print()
    else:
        console.print("[green]No vulnerabilities confirmed.[/green]")
        console.print()

    full_table = Table(title="All Scenarios")
    full_table.add_column("#", width=4, justify="right")
    full_table.add_column("Status", width=8)
    full_table.add_column("Scenario", width=24)
    full_table.add_column("Results", width=12)
    full_table.add_column("Details", width=60)

    for i, o in enumerate(outcomes, 1):
        counts = {s: sum(1 for r in o.results if r.status is s) for s in ProbeStatus}
        tally = " ".join(f"{s.value[0]}{n}" for s, n in counts.items() if n)
        details = o.error or (o.results[-1].description if o.results else "")
        full_table.add_row(
            str(i),
            Text(o.status.upper(), style=STATUS_STYLES.get(o.status, "")),
            o.name,
            tally,
            details[:60],
        )
    console.print(full_table)
    console.print()


# ── JSON output ───────────────────────────────────────────────────────────────


def _report_json(outcomes: list[ScenarioOutcome], output_path: str):
    write_summary(outcomes, Path(output_path))


# ── Public API ────────────────────────────────────────────────────────────────


def generate_report(
    outcomes: list[ScenarioOutcome],
    fmt: str = "console",
    output_path: Optional[str] = None,
):
    """Render the run report.

    Args:
        outcomes: Scenario outcomes from ``run_scenarios``.
        fmt: "console" or "json".
        output_path: File path for json output; stdout when omitted.
    """
    if not outcomes:
        print("[info] No scenarios were run.")
        return

    if fmt == "console":
        _report_console(outcomes)
    elif fmt == "json":
        if output_path:
            _report_json(outcomes, output_path)
            print(f"[report] JSON report saved to: {output_path}")
        else:
            print(json.dumps({
                "summary": summarize(outcomes),
                "scenarios": [o.model_dump(mode="json") for o in outcomes],
            }, indent=2, default=str))
    else:
        print(f"[error] Unknown format: {fmt}")
