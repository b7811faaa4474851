"""
Shared fixtures: a throwaway credential store and probe contexts wired to
``httpx.MockTransport`` handlers, so no test touches the network.
"""

import json
from collections.abc import Callable

import httpx
import pytest

from apisec.auth.helper import AuthHelper
from apisec.discovery.engine import DiscoveryEngine, default_strategies
from apisec.probes.base import ProbeContext
from apisec.reporting.reporter import SecurityReporter
from apisec.storage.credentials import CredentialStore
from apisec.transport import build_client

BASE = "http://target.test"

Handler = Callable[[httpx.Request], httpx.Response]


def not_found(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, text="Not Found")


def mock_client(handler: Handler, base_url: str = BASE) -> httpx.AsyncClient:
    return build_client(base_url, transport=httpx.MockTransport(handler))


def results_of(ctx: ProbeContext):
    return ctx.reporter.results


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------

@pytest.fixture
def users_file(tmp_path):
    path = tmp_path / "users.json"
    path.write_text(json.dumps({"users": []}), encoding="utf-8")
    return path


@pytest.fixture
def store(users_file):
    return CredentialStore(users_file)


# ---------------------------------------------------------------------------
# Probe contexts
# ---------------------------------------------------------------------------

@pytest.fixture
def make_ctx(store):
    """Factory: ``make_ctx(handler, base_url=BASE)`` -> ProbeContext."""

    def _make(handler: Handler, base_url: str = BASE, test_name: str = "Test: probe") -> ProbeContext:
        client = mock_client(handler, base_url)
        engine = DiscoveryEngine(client, default_strategies())
        return ProbeContext(
            client=client,
            reporter=SecurityReporter(test_name),
            store=store,
            engine=engine,
            auth=AuthHelper(client, engine, store),
        )

    return _make
