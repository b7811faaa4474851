import logging

import httpx

from apisec.discovery.capabilities import CAPABILITIES, CapabilitySpec
from apisec.discovery.strategies import (
    BrowserDiscovery,
    BrowserFactory,
    DiscoveryStrategy,
    HtmlFormDiscovery,
    OpenApiDiscovery,
    StaticCandidates,
)
from apisec.models.credentials import TestUser
from apisec.models.discovery import Attempt, Capability, DiscoveryOutcome, Exhausted, Located

log = logging.getLogger(__name__)


def default_strategies(browser_factory: BrowserFactory | None = None) -> list[DiscoveryStrategy]:
    """Static paths, then the HTML form, then API docs, then (optionally) the browser."""
    strategies: list[DiscoveryStrategy] = [StaticCandidates(), HtmlFormDiscovery(), OpenApiDiscovery()]
    if browser_factory is not None:
        strategies.append(BrowserDiscovery(browser_factory))
    return strategies


class DiscoveryEngine:
    """
    Runs the strategy chain for a capability.

    The first ``Located`` wins and carries the attempts of every tier that
    ran before it. If all tiers come back empty the result is
    ``Exhausted`` with the full attempt log. ``discover`` never raises.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        strategies: list[DiscoveryStrategy] | None = None,
        capabilities: dict[Capability, CapabilitySpec] = CAPABILITIES,
    ) -> None:
        self.client = client
        self.strategies = strategies if strategies is not None else default_strategies()
        self.capabilities = capabilities

    async def discover(
        self,
        capability: Capability,
        user: TestUser | None = None,
        headers: dict | None = None,
    ) -> DiscoveryOutcome:
        spec = self.capabilities[capability]
        attempts: list[Attempt] = []

        for strategy in self.strategies:
            try:
                outcome = await strategy.locate(self.client, spec, user, headers)
            except Exception as e:
                log.warning("%s discovery tier failed for %s: %s", strategy.name, capability.value, e)
                attempts.append(Attempt(endpoint=f"<{strategy.name}>", error=f"{type(e).__name__}: {e}"))
                continue

            attempts.extend(outcome.attempts)
            if isinstance(outcome, Located):
                return outcome.model_copy(update={"attempts": list(attempts)})

        log.info("no %s endpoint found after %d attempts", capability.value, len(attempts))
        return Exhausted(capability=capability, attempts=attempts)
