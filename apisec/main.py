"""
apisec: CLI entry point for the API security test suite.

Workflow:
    1. Seed accounts:   apisec seed --limit 10
       Registers the first fixture users through the HTML register form.

    2. Check plumbing:  apisec discover register
                        apisec login
       Shows which endpoints the discovery chain lands on and whether a
       session can be established.

    3. Scan:            apisec scan --format console
                        apisec scan --probe cors --probe csrf --report-dir out/
       Runs every probe (or the named ones) as isolated scenarios and writes
       Markdown/JSON artifacts plus summary.json under the report directory.

Exit status is 1 when any scenario confirmed a vulnerability.

Target is BASE_URL (default http://localhost:5001) or --base-url.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from functools import partial
from pathlib import Path

from apisec.config import BASE_URL, BROWSER_ENABLED, REPORT_DIR, SCENARIO_TIMEOUT, SEED_DELAY, SEED_LIMIT, USERS_FIXTURE


def _setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="[%(name)s] %(message)s",
        handlers=[logging.StreamHandler()],
    )
    # one line per request is too much at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _browser_factory(args):
    from apisec.crawler.browser import BrowserSession

    return partial(BrowserSession, args.base_url) if args.browser else None


# ── Subcommands ───────────────────────────────────────────────────────────────


def cmd_scan(args):
    """Run probes as scenarios and report."""
    from apisec.probes.registry import PROBES, get_probes

    if args.list:
        for name, cls in PROBES.items():
            print(f"  {name:<26} {cls.title}")
        return

    _setup_logging(args.verbose)
    from apisec.reporting.summary import generate_report
    from apisec.runner import exit_code, run_scenarios

    try:
        probes = get_probes(args.probe)
    except KeyError as e:
        print(f"[error] {e.args[0]}")
        sys.exit(2)

    def on_outcome(outcome):
        print(f"  [{outcome.status.upper():<7}] {outcome.name}")

    print(f"[scan] Target: {args.base_url}")
    print(f"[scan] {len(probes)} scenario(s), reports in {args.report_dir}")
    print()

    outcomes = asyncio.run(run_scenarios(
        probes,
        base_url=args.base_url,
        report_dir=Path(args.report_dir),
        browser=args.browser,
        timeout=args.timeout,
        store_path=Path(args.users),
        on_outcome=on_outcome,
    ))

    generate_report(outcomes, fmt=args.format, output_path=args.output)
    sys.exit(exit_code(outcomes))


def cmd_discover(args):
    """Run the discovery chain for one capability."""
    _setup_logging(args.verbose)
    from apisec.discovery.engine import DiscoveryEngine, default_strategies
    from apisec.models.discovery import Capability, Located
    from apisec.storage.credentials import CredentialStore
    from apisec.transport import build_client

    capability = Capability(args.capability)

    async def run():
        store = CredentialStore(args.users)
        user = store.create_random("disc", persist=False) if capability is Capability.REGISTER \
            else store.find_or_create("disc")
        async with build_client(args.base_url) as client:
            engine = DiscoveryEngine(client, default_strategies(_browser_factory(args)))
            outcome = await engine.discover(capability, user)
        if isinstance(outcome, Located) and capability is Capability.REGISTER:
            store.save(user)
        return outcome

    outcome = asyncio.run(run())
    for attempt in outcome.attempts:
        print(f"  {attempt.describe()}")
    print()
    if isinstance(outcome, Located):
        c = outcome.candidate
        print(f"[discover] {capability.value}: {c.method} {c.path} ({c.content_type}) "
              f"via {outcome.strategy}, HTTP {outcome.response.status_code}")
    else:
        print(f"[discover] {outcome.describe()}")
        sys.exit(1)


def cmd_login(args):
    """Establish a session as a stored (or new) test user."""
    _setup_logging(args.verbose)
    from apisec.auth.helper import AuthHelper
    from apisec.discovery.engine import DiscoveryEngine, default_strategies
    from apisec.storage.credentials import CredentialStore
    from apisec.transport import build_client

    async def run():
        factory = _browser_factory(args)
        async with build_client(args.base_url) as client:
            store = CredentialStore(args.users)
            auth = AuthHelper(client, DiscoveryEngine(client, default_strategies(factory)), store, factory)
            return await auth.ensure_session(args.prefix)

    session = asyncio.run(run())
    if session is None or session.is_empty:
        print("[login] Could not establish a session.")
        sys.exit(1)
    print(f"[login] Logged in as {session.identity}")
    print(f"  token:  {'yes' if session.token else 'no'}")
    print(f"  cookie: {session.cookie_header or 'no'}")


def cmd_seed(args):
    """Register the first fixture users through the HTML register form."""
    _setup_logging(args.verbose)
    from apisec.discovery.capabilities import CAPABILITIES
    from apisec.discovery.strategies import HtmlFormDiscovery
    from apisec.models.discovery import Capability, Located
    from apisec.storage.credentials import CredentialStore
    from apisec.transport import build_client

    users = CredentialStore(args.users).load()[:args.limit]
    if not users:
        print(f"[seed] No users in {args.users}")
        return

    async def run():
        spec = CAPABILITIES[Capability.REGISTER]
        form = HtmlFormDiscovery()
        created = 0
        async with build_client(args.base_url) as client:
            for i, user in enumerate(users):
                if i:
                    await asyncio.sleep(args.delay)
                outcome = await form.locate(client, spec, user)
                if isinstance(outcome, Located):
                    created += 1
                    print(f"  [ok]   {user.identity} (HTTP {outcome.response.status_code})")
                else:
                    last = outcome.attempts[-1].describe() if outcome.attempts else "no attempts"
                    print(f"  [fail] {user.identity}: {last}")
        return created

    created = asyncio.run(run())
    print()
    print(f"[seed] {created}/{len(users)} users registered or already present")


def cmd_selectors(args):
    """List inputs and buttons on the candidate login/register pages."""
    _setup_logging(args.verbose)
    from playwright.async_api import Error as PlaywrightError
    from rich.console import Console
    from rich.table import Table

    from apisec.crawler.browser import LOGIN_PAGES, BrowserSession

    pages = args.path or [*LOGIN_PAGES, "/register"]

    async def run():
        found = []
        async with BrowserSession(args.base_url) as browser:
            for path in pages:
                try:
                    found.append(await browser.describe_inputs(path))
                except PlaywrightError as e:
                    found.append({"path": path, "error": str(e).splitlines()[0]})
        return found

    console = Console()
    for page in asyncio.run(run()):
        if "error" in page:
            console.print(f"[yellow]{page['path']}[/yellow]: {page['error']}")
            continue
        table = Table(title=f"{page['path']} -> {page['url']}")
        table.add_column("type")
        table.add_column("name")
        table.add_column("id")
        table.add_column("placeholder")
        for inp in page["inputs"]:
            table.add_row(inp["type"], inp["name"], inp["id"], inp["placeholder"])
        console.print(table)
        console.print(f"  buttons: {', '.join(b for b in page['buttons'] if b) or '(none)'}")
        console.print()


# ── Argument parser ───────────────────────────────────────────────────────────


def _common(p: argparse.ArgumentParser, browser: bool = True):
    p.add_argument(
        "--base-url", type=str, default=BASE_URL,
        help=f"Target base URL (default: {BASE_URL})",
    )
    p.add_argument(
        "--users", type=str, default=str(USERS_FIXTURE),
        help="Path to the users fixture (default: fixtures/users.json)",
    )
    if browser:
        p.add_argument(
            "--no-browser", dest="browser", action="store_false", default=BROWSER_ENABLED,
            help="Disable the Playwright fallbacks",
        )
    p.add_argument("--verbose", "-v", action="store_true")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apisec",
        description="Black-box API security test suite. "
                    "Seed > Discover > Login > Scan.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  apisec seed --limit 5
  apisec discover login
  apisec login --prefix sec
  apisec scan --list
  apisec scan --probe sqli-login --probe cors --format json --output report.json
""",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # -- scan ------------------------------------------------------------------
    p_scan = subparsers.add_parser("scan", help="Run security probes against the target")
    p_scan.add_argument(
        "--probe", "-p", action="append", default=None,
        help="Probe to run (repeatable, default: all)",
    )
    p_scan.add_argument("--list", action="store_true", help="List available probes and exit")
    p_scan.add_argument(
        "--report-dir", type=str, default=str(REPORT_DIR),
        help=f"Directory for per-scenario artifacts (default: {REPORT_DIR})",
    )
    p_scan.add_argument(
        "--format", "-f", type=str, default="console",
        choices=["console", "json"],
        help="Report format (default: console)",
    )
    p_scan.add_argument(
        "--output", "-o", type=str, default=None,
        help="Output file for the json report",
    )
    p_scan.add_argument(
        "--timeout", type=float, default=SCENARIO_TIMEOUT,
        help=f"Per-scenario timeout in seconds (default: {SCENARIO_TIMEOUT:.0f})",
    )
    _common(p_scan)
    p_scan.set_defaults(func=cmd_scan)

    # -- discover --------------------------------------------------------------
    p_discover = subparsers.add_parser("discover", help="Locate an endpoint for a capability")
    p_discover.add_argument("capability", choices=["register", "login", "resource-list"])
    _common(p_discover)
    p_discover.set_defaults(func=cmd_discover)

    # -- login -----------------------------------------------------------------
    p_login = subparsers.add_parser("login", help="Establish a session as a test user")
    p_login.add_argument(
        "--prefix", type=str, default="sec",
        help="Prefix for a newly minted user (default: sec)",
    )
    _common(p_login)
    p_login.set_defaults(func=cmd_login)

    # -- seed ------------------------------------------------------------------
    p_seed = subparsers.add_parser("seed", help="Register fixture users via the HTML form")
    p_seed.add_argument(
        "--limit", type=int, default=SEED_LIMIT,
        help=f"Number of fixture users to register (default: {SEED_LIMIT})",
    )
    p_seed.add_argument(
        "--delay", "-d", type=float, default=SEED_DELAY,
        help=f"Delay in seconds between registrations (default: {SEED_DELAY})",
    )
    _common(p_seed, browser=False)
    p_seed.set_defaults(func=cmd_seed)

    # -- selectors -------------------------------------------------------------
    p_sel = subparsers.add_parser("selectors", help="Show form inputs on login/register pages")
    p_sel.add_argument("--path", action="append", default=None, help="Page path (repeatable)")
    _common(p_sel, browser=False)
    p_sel.set_defaults(func=cmd_selectors)

    return parser


# ── Entry point ───────────────────────────────────────────────────────────────


def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    args.func(args)


if __name__ == "__main__":
    main()
