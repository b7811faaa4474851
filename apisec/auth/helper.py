"""
Authentication helper: find a login endpoint, log in, and turn whatever the
server hands back (JSON token, auth header, cookies) into request headers.
"""

import logging
import re
from urllib.parse import unquote

import httpx
from playwright.async_api import Error as PlaywrightError

from apisec.config import TOKEN_COOKIE, TOKEN_FIELD
from apisec.crawler.browser import LOGIN_PAGES
from apisec.discovery.capabilities import CAPABILITIES
from apisec.discovery.engine import DiscoveryEngine
from apisec.discovery.strategies import BrowserFactory
from apisec.models.auth import AuthContext, LoginResult
from apisec.models.credentials import TestUser
from apisec.models.discovery import Capability, DiscoveryOutcome, Located
from apisec.models.exchange import ResponseSnapshot
from apisec.storage.credentials import CredentialStore
from apisec.transport import send

log = logging.getLogger(__name__)

TOKEN_KEYS = [TOKEN_FIELD, "token", "access_token", "jwt", "id_token"]
TOKEN_HEADERS = ["authorization", "x-auth-token", "www-authenticate"]
TOKEN_COOKIES = [TOKEN_COOKIE, "jwt", "access_token"]

# "Bearer <b64token>" or a bare token; auth-params such as realm="api" never match
_HEADER_TOKEN_RE = re.compile(r"^(?!bearer$)(?:bearer\s+)?([\w\-.~+/]+=*)$", re.I)

# Login endpoints that are not there at all, as opposed to rejecting credentials
_ABSENT = frozenset({0, 404, 405})


# ── Cookie parsing ────────────────────────────────────────────────────

def parse_set_cookie_flags(set_cookie: str) -> dict:
    """``{"http_only", "secure", "same_site"}`` from one Set-Cookie value."""
    flags = {"http_only": False, "secure": False, "same_site": None}
    for part in (p.strip() for p in set_cookie.split(";")):
        low = part.lower()
        if low == "httponly":
            flags["http_only"] = True
        elif low == "secure":
            flags["secure"] = True
        elif low.startswith("samesite="):
            flags["same_site"] = part.split("=", 1)[1]
    return flags


def cookie_pair(set_cookie: str) -> tuple[str, str] | None:
    first = set_cookie.split(";", 1)[0].strip()
    if "=" not in first:
        return None
    name, value = first.split("=", 1)
    return name.strip(), value.strip()


def parse_set_cookie_value(set_cookies: list[str], name: str) -> str | None:
    for sc in set_cookies:
        pair = cookie_pair(sc)
        if pair and pair[0] == name and pair[1]:
            return unquote(pair[1])
    return None


def cookie_header_from_set_cookie(set_cookies: list[str]) -> str | None:
    """Replayable ``Cookie`` header: name=value pairs, attributes dropped."""
    pairs = [p for p in (cookie_pair(sc) for sc in set_cookies) if p]
    if not pairs:
        return None
    return "; ".join(f"{n}={v}" for n, v in pairs)


# ── Token extraction ──────────────────────────────────────────────────

def extract_token(resp: ResponseSnapshot) -> str | None:
    """Token from the JSON body, then auth headers, then token cookies."""
    body = resp.json_body()
    if isinstance(body, dict):
        scopes = [body]
        if isinstance(body.get("data"), dict):
            scopes.append(body["data"])
        for scope in scopes:
            for key in TOKEN_KEYS:
                value = scope.get(key)
                if isinstance(value, str) and value:
                    return value

    for header in TOKEN_HEADERS:
        value = resp.header(header)
        match = _HEADER_TOKEN_RE.match(value.strip()) if value else None
        if match:
            return match.group(1)

    for name in TOKEN_COOKIES:
        value = parse_set_cookie_value(resp.set_cookies, name)
        if value:
            return value
    return None


def auth_headers(ctx: AuthContext | None) -> dict[str, str]:
    if ctx is None:
        return {}
    headers: dict[str, str] = {}
    if ctx.token:
        headers["Authorization"] = f"Bearer {ctx.token}"
    if ctx.cookie_header:
        headers["Cookie"] = ctx.cookie_header
    return headers


class AuthHelper:
    def __init__(
        self,
        client: httpx.AsyncClient,
        engine: DiscoveryEngine,
        store: CredentialStore,
        browser_factory: BrowserFactory | None = None,
    ) -> None:
        self.client = client
        self.engine = engine
        self.store = store
        self.browser_factory = browser_factory
        self.login_spec = CAPABILITIES[Capability.LOGIN]

    @property
    def login_paths(self) -> tuple[str, ...]:
        return self.login_spec.paths

    def _body(self, identity: str, password: str) -> dict:
        return {"email": identity, "username": identity, "password": password}

    async def _post_login(self, path: str, kind: str, identity: str, password: str) -> ResponseSnapshot:
        body = self._body(identity, password)
        if kind == "json":
            return await send(self.client, "POST", path, json_body=body)
        return await send(self.client, "POST", path, form=body)

    def _result(self, resp: ResponseSnapshot, path: str, kind: str) -> LoginResult:
        return LoginResult(
            response=resp,
            path=path,
            content_type=kind,
            token=extract_token(resp),
            cookie_header=cookie_header_from_set_cookie(resp.set_cookies),
        )

    # ── API login ─────────────────────────────────────────────────────

    async def login(self, identity: str, password: str) -> LoginResult | None:
        """First login candidate that accepts the credentials, or None."""
        for path in self.login_paths:
            for kind in ("json", "form"):
                resp = await self._post_login(path, kind, identity, password)
                if resp.status_code in self.login_spec.success:
                    result = self._result(resp, path, kind)
                    log.info("logged in as %s via %s (%s, token=%s)",
                             identity, path, kind, "yes" if result.token else "no")
                    return result
        log.info("login failed for %s on all candidates", identity)
        return None

    async def attempt_login(self, identity: str, password: str) -> LoginResult | None:
        """First login endpoint that exists, whatever it answered.

        Used to replay bad credentials; callers inspect ``response``.
        """
        for path in self.login_paths:
            for kind in ("json", "form"):
                resp = await self._post_login(path, kind, identity, password)
                if resp.status_code not in _ABSENT:
                    return self._result(resp, path, kind)
        return None

    async def find_login_endpoint(self) -> str | None:
        """Path of the first login candidate that is present at all."""
        for path in self.login_paths:
            resp = await send(self.client, "POST", path, json_body={})
            if resp.status_code not in _ABSENT:
                return path
        return None

    # ── Registration ──────────────────────────────────────────────────

    async def register(self, user: TestUser) -> DiscoveryOutcome:
        outcome = await self.engine.discover(Capability.REGISTER, user)
        if isinstance(outcome, Located):
            self.store.save(user)
        return outcome

    # ── UI login ──────────────────────────────────────────────────────

    async def ui_login(self, identity: str, password: str) -> AuthContext | None:
        if self.browser_factory is None:
            return None
        try:
            async with self.browser_factory() as browser:
                for page in LOGIN_PAGES:
                    outcome = await browser.submit_credentials(page, identity, password)
                    if outcome.succeeded:
                        cookies = await browser.cookie_header()
                        log.info("UI login succeeded on %s", page)
                        return AuthContext(cookie_header=cookies, identity=identity)
        except PlaywrightError as e:
            log.warning("UI login failed: %s", e)
        return None

    # ── Session bootstrap ─────────────────────────────────────────────

    def ensure_user(self, prefix: str = "sec") -> TestUser:
        return self.store.find_or_create(prefix)

    async def ensure_session(self, prefix: str = "sec") -> AuthContext | None:
        """Log in as a stored (or freshly minted) user; register first if needed."""
        user = self.ensure_user(prefix)
        result = await self.login(user.identity, user.password)
        if result is None:
            outcome = await self.register(user)
            if isinstance(outcome, Located):
                result = await self.login(user.identity, user.password)
        if result is not None:
            return result.to_context(user.identity)
        return await self.ui_login(user.identity, user.password)
