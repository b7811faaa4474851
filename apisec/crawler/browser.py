"""
Playwright-driven form filling for the browser fallback tiers.

Fields are located the way a user would find them: visible label, then
accessible role and name, then placeholder, then a raw attribute match.
"""

import logging
import re

from playwright.async_api import Locator, Page, async_playwright
from pydantic import BaseModel

from apisec.config import BASE_URL, BROWSER_TIMEOUT, FORM_SETTLE_MS

log = logging.getLogger(__name__)

IDENTITY_LABEL = re.compile(r"e-?mail|user ?name|login", re.I)
IDENTITY_ATTRS = (
    'input[type="email"], input[name*=email], input[id*=email], '
    "input[name*=user], input[id*=user]"
)
SECRET_LABEL = re.compile(r"password", re.I)
SECRET_ATTRS = 'input[type="password"], input[name*=password], input[id*=password]'

LOGIN_BUTTON = re.compile(r"log ?in|sign ?in|submit|enter", re.I)
REGISTER_BUTTON = re.compile(r"sign ?up|create account|register|submit", re.I)

ERROR_SELECTORS = [
    "#message", ".error", ".alert", ".alert-danger", ".alert-error",
    ".error-message", ".message", ".notification", '[role="alert"]',
    '[aria-live="assertive"]', '[aria-live="polite"]', "#error", "#notification",
]

LOGIN_PAGES = ["/login", "/signin", "/auth", "/auth/login", "/auth/signin"]
LOGOUT_PATHS = ["/logout", "/signout", "/auth/logout", "/auth/signout"]


class FormSubmission(BaseModel):
    """What happened after a UI form was filled and submitted."""
    page_url: str
    filled: bool
    error_text: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.filled and not self.error_text


# ── Field location ────────────────────────────────────────────────────

async def _first_present(candidates: list[Locator]) -> Locator | None:
    for loc in candidates:
        if await loc.count() > 0:
            return loc.first
    return None


async def locate_identity_field(page: Page) -> Locator | None:
    return await _first_present([
        page.get_by_label(IDENTITY_LABEL),
        page.get_by_role("textbox", name=IDENTITY_LABEL),
        page.get_by_placeholder(IDENTITY_LABEL),
        page.locator(IDENTITY_ATTRS),
    ])


async def locate_secret_field(page: Page) -> Locator | None:
    return await _first_present([
        page.get_by_label(SECRET_LABEL),
        page.get_by_placeholder(SECRET_LABEL),
        page.locator(SECRET_ATTRS),
    ])


async def locate_submit(page: Page, name: re.Pattern) -> Locator | None:
    return await _first_present([
        page.get_by_role("button", name=name),
        page.locator('button[type="submit"], input[type="submit"]'),
        page.locator("button"),
    ])


async def visible_error(page: Page) -> str | None:
    """Text of the first visible, non-empty error element."""
    for selector in ERROR_SELECTORS:
        loc = page.locator(selector)
        for i in range(await loc.count()):
            el = loc.nth(i)
            if await el.is_visible():
                text = (await el.inner_text()).strip()
                if text:
                    return text
    return None


# ── Session ───────────────────────────────────────────────────────────

class BrowserSession:
    """One headless Chromium with a single context, used as an async context manager."""

    def __init__(self, base_url: str = BASE_URL, timeout: int = BROWSER_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._pw = None
        self._browser = None
        self.context = None

    async def __aenter__(self) -> "BrowserSession":
        self._pw = await async_playwright().start()
        self._browser = await self._pw.chromium.launch(headless=True)
        self.context = await self._browser.new_context(ignore_https_errors=True)
        self.context.set_default_timeout(self.timeout)
        return self

    async def __aexit__(self, *exc) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            if self._pw is not None:
                await self._pw.stop()

    async def open(self, path: str) -> Page:
        page = await self.context.new_page()
        await page.goto(f"{self.base_url}{path}", wait_until="domcontentloaded", timeout=self.timeout)
        return page

    async def submit_credentials(
        self, path: str, identity: str, secret: str, button: re.Pattern = LOGIN_BUTTON,
    ) -> FormSubmission:
        """Fill identity + secret on *path*, submit, wait, then look for error text."""
        page = await self.open(path)
        try:
            ident = await locate_identity_field(page)
            pwd = await locate_secret_field(page)
            submit = await locate_submit(page, button)
            if ident is None or pwd is None or submit is None:
                log.debug("form fields not found on %s", path)
                return FormSubmission(page_url=page.url, filled=False)

            await ident.fill(identity)
            await pwd.fill(secret)
            await submit.click()
            await page.wait_for_timeout(FORM_SETTLE_MS)
            return FormSubmission(page_url=page.url, filled=True, error_text=await visible_error(page))
        finally:
            await page.close()

    async def cookie_header(self) -> str | None:
        cookies = await self.context.cookies()
        if not cookies:
            return None
        return "; ".join(f"{c['name']}={c['value']}" for c in cookies)

    async def describe_inputs(self, path: str) -> dict:
        """Inputs and buttons on a page, for selector troubleshooting."""
        page = await self.open(path)
        try:
            inputs = await page.locator("input").evaluate_all(
                "els => els.map(e => ({type: e.type, name: e.name, id: e.id, placeholder: e.placeholder}))"
            )
            buttons = await page.locator("button, input[type=submit]").evaluate_all(
                "els => els.map(e => (e.innerText || e.value || '').trim())"
            )
            return {"path": path, "url": page.url, "inputs": inputs, "buttons": buttons}
        finally:
            await page.close()
