"""
Discovery tiers.

Each strategy gets one shot at locating a capability and returns either a
``Located`` or an ``Exhausted`` carrying every attempt it made. Network
failures are attempts, not exceptions.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

import httpx
from playwright.async_api import Error as PlaywrightError

from apisec.crawler.browser import LOGIN_BUTTON, REGISTER_BUTTON, BrowserSession
from apisec.crawler.forms import extract_first_form, extract_json_links, path_of
from apisec.crawler.openapi import DOC_PATHS, EXTRA_SPEC_PATHS, find_operations, is_openapi_document
from apisec.discovery.capabilities import CapabilitySpec
from apisec.discovery.fields import fill_form
from apisec.models.credentials import TestUser
from apisec.models.discovery import Attempt, Capability, EndpointCandidate, Exhausted, Located
from apisec.models.exchange import ResponseSnapshot
from apisec.transport import send

log = logging.getLogger(__name__)

BrowserFactory = Callable[[], BrowserSession]


class DiscoveryStrategy(ABC):
    name: str = "base"

    @abstractmethod
    async def locate(
        self,
        client: httpx.AsyncClient,
        spec: CapabilitySpec,
        user: TestUser | None,
        headers: dict | None = None,
    ) -> Located | Exhausted:
        ...

    def _located(self, resp: ResponseSnapshot, candidate: EndpointCandidate, attempts: list[Attempt]) -> Located:
        log.info("%s: found %s %s via %s (HTTP %d)",
                 self.name, candidate.method, candidate.path, candidate.content_type, resp.status_code)
        return Located(response=resp, candidate=candidate, strategy=self.name, attempts=attempts)


async def _try_candidate(
    client: httpx.AsyncClient,
    candidate: EndpointCandidate,
    body: dict | None,
    headers: dict | None,
) -> ResponseSnapshot:
    if body is None:
        return await send(client, candidate.method, candidate.path, headers=headers)
    if candidate.content_type == "form":
        return await send(client, candidate.method, candidate.path, form=body, headers=headers)
    return await send(client, candidate.method, candidate.path, json_body=body, headers=headers)


async def _try_paths(
    strategy: DiscoveryStrategy,
    client: httpx.AsyncClient,
    spec: CapabilitySpec,
    paths: list[str],
    user: TestUser | None,
    headers: dict | None,
    attempts: list[Attempt],
) -> Located | None:
    """Each path with form then JSON bodies (or a single GET); first plausible status wins."""
    body = spec.payload(user)
    kinds = ("form", "json") if body is not None else ("json",)
    for path in paths:
        for kind in kinds:
            candidate = EndpointCandidate(path=path, method=spec.method, content_type=kind)
            resp = await _try_candidate(client, candidate, body, headers)
            label = f"{path} ({kind})" if body is not None else f"{path} ({spec.method})"
            attempts.append(Attempt.from_response(label, resp))
            if resp.status_code in spec.success:
                return strategy._located(resp, candidate, attempts)
    return None


# ── Tier 1 ────────────────────────────────────────────────────────────

class StaticCandidates(DiscoveryStrategy):
    """Fixed, ordered list of well-known paths."""

    name = "static"

    async def locate(self, client, spec, user, headers=None):
        attempts: list[Attempt] = []
        found = await _try_paths(self, client, spec, list(spec.paths), user, headers, attempts)
        return found or Exhausted(capability=spec.capability, attempts=attempts)


# ── Tier 2 ────────────────────────────────────────────────────────────

class HtmlFormDiscovery(DiscoveryStrategy):
    """Parse the first form on the capability's page and replay it."""

    name = "html-form"

    async def locate(self, client, spec, user, headers=None):
        attempts: list[Attempt] = []
        if spec.form_page is None or user is None:
            return Exhausted(capability=spec.capability, attempts=attempts)

        page = await send(client, "GET", spec.form_page, headers=headers)
        attempts.append(Attempt.from_response(f"{spec.form_page} (page)", page))
        if page.status_code != 200 or not page.is_html:
            return Exhausted(capability=spec.capability, attempts=attempts)

        form = extract_first_form(page.text, page.url)
        if form is None:
            attempts.append(Attempt(endpoint=f"{spec.form_page} (form)", error="no <form> on page"))
            return Exhausted(capability=spec.capability, attempts=attempts)

        body = fill_form(form, user.identity, user.password)
        action = path_of(form.action)
        base = str(client.base_url).rstrip("/")
        form_headers = {**(headers or {}), "Referer": page.url or f"{base}{spec.form_page}", "Origin": base}
        candidate = EndpointCandidate(path=action, method=form.method, content_type="form")
        resp = await send(client, form.method, action, form=body, headers=form_headers)
        attempts.append(Attempt.from_response(f"{action} (form-submit)", resp))
        if resp.status_code in spec.success:
            return self._located(resp, candidate, attempts)
        return Exhausted(capability=spec.capability, attempts=attempts)


# ── Tier 3 ────────────────────────────────────────────────────────────

class OpenApiDiscovery(DiscoveryStrategy):
    """Read published API docs and try the operations whose path matches."""

    name = "openapi"

    async def locate(self, client, spec, user, headers=None):
        attempts: list[Attempt] = []
        if not spec.openapi_keywords:
            return Exhausted(capability=spec.capability, attempts=attempts)

        for doc_path in DOC_PATHS:
            resp = await send(client, "GET", doc_path, headers=headers)
            attempts.append(Attempt.from_response(f"{doc_path} (docs)", resp))
            if resp.status_code != 200:
                continue

            doc = resp.json_body()
            if is_openapi_document(doc):
                found = await self._try_document(client, spec, doc, user, headers, attempts)
                if found:
                    return found
            elif resp.is_html:
                # Swagger UI: follow quoted *.json links one level deep
                links = extract_json_links(resp.text)
                for link in [*links, *(p for p in EXTRA_SPEC_PATHS if p not in links)]:
                    spec_resp = await send(client, "GET", link, headers=headers)
                    attempts.append(Attempt.from_response(f"{link} (spec)", spec_resp))
                    linked = spec_resp.json_body() if spec_resp.status_code == 200 else None
                    if is_openapi_document(linked):
                        found = await self._try_document(client, spec, linked, user, headers, attempts)
                        if found:
                            return found

        return Exhausted(capability=spec.capability, attempts=attempts)

    async def _try_document(self, client, spec, doc, user, headers, attempts) -> Located | None:
        paths = find_operations(doc, list(spec.openapi_keywords), spec.method)
        log.debug("openapi: %d candidate operations for %s", len(paths), spec.capability.value)
        return await _try_paths(self, client, spec, paths, user, headers, attempts)


# ── Tier 4 ────────────────────────────────────────────────────────────

class BrowserDiscovery(DiscoveryStrategy):
    """Drive the real UI form and judge success by the absence of an error message."""

    name = "browser"

    def __init__(self, browser_factory: BrowserFactory) -> None:
        self.browser_factory = browser_factory

    async def locate(self, client, spec, user, headers=None):
        attempts: list[Attempt] = []
        if not spec.browser_pages or user is None:
            return Exhausted(capability=spec.capability, attempts=attempts)

        button = REGISTER_BUTTON if spec.capability is Capability.REGISTER else LOGIN_BUTTON
        async with self.browser_factory() as browser:
            for page_path in spec.browser_pages:
                label = f"{page_path} (ui)"
                try:
                    outcome = await browser.submit_credentials(page_path, user.identity, user.password, button)
                except PlaywrightError as e:
                    attempts.append(Attempt(endpoint=label, error=f"browser: {e}"))
                    continue
                if not outcome.filled:
                    attempts.append(Attempt(endpoint=label, error="form fields not found"))
                    continue
                if outcome.error_text:
                    attempts.append(Attempt(endpoint=label, error=f"page error: {outcome.error_text[:200]}"))
                    continue

                resp = ResponseSnapshot(url=outcome.page_url, method="UI", status_code=200)
                attempts.append(Attempt.from_response(label, resp))
                candidate = EndpointCandidate(path=page_path, method="UI", content_type="form")
                return self._located(resp, candidate, attempts)

        return Exhausted(capability=spec.capability, attempts=attempts)
