"""Where to look for each capability and what counts as "found"."""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from apisec.config import LOGIN_PATH_OVERRIDE
from apisec.models.credentials import TestUser
from apisec.models.discovery import Capability

REGISTER_PATHS = [
    "/api/users", "/api/auth/register", "/api/register", "/users",
    "/register", "/signup", "/api/v1/users",
]

LOGIN_PATHS = LOGIN_PATH_OVERRIDE or [
    "/api/login", "/login", "/auth/login", "/sessions", "/api/sessions",
    "/api/auth/token", "/api/token", "/oauth/token", "/api/auth/login",
]

RESOURCE_LIST_PATHS = [
    "/api/users", "/api/accounts", "/api/transactions", "/api/cards", "/api/virtual-cards",
]


class CapabilitySpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    capability: Capability
    paths: tuple[str, ...]
    method: str = "POST"
    success: frozenset[int] = frozenset({200, 201})
    form_page: Optional[str] = None
    openapi_keywords: tuple[str, ...] = ()
    browser_pages: tuple[str, ...] = ()

    @property
    def has_body(self) -> bool:
        return self.method in ("POST", "PUT", "PATCH")

    def payload(self, user: TestUser | None) -> dict | None:
        """Request body for the API tiers."""
        if user is None or not self.has_body:
            return None
        if self.capability is Capability.LOGIN:
            return {"email": user.identity, "username": user.identity, "password": user.password}
        body = {"email": user.email or user.identity, "password": user.password}
        if user.username:
            body["username"] = user.username
        return body


CAPABILITIES: dict[Capability, CapabilitySpec] = {
    Capability.REGISTER: CapabilitySpec(
        capability=Capability.REGISTER,
        paths=tuple(REGISTER_PATHS),
        success=frozenset({200, 201, 302, 303, 409}),
        form_page="/register",
        openapi_keywords=("user", "register", "signup"),
        browser_pages=("/register",),
    ),
    Capability.LOGIN: CapabilitySpec(
        capability=Capability.LOGIN,
        paths=tuple(LOGIN_PATHS),
        success=frozenset({200, 201, 302}),
        form_page="/login",
        openapi_keywords=("login", "session", "token", "auth"),
        browser_pages=("/login", "/signin", "/auth", "/auth/login", "/auth/signin"),
    ),
    Capability.RESOURCE_LIST: CapabilitySpec(
        capability=Capability.RESOURCE_LIST,
        paths=tuple(RESOURCE_LIST_PATHS),
        method="GET",
        success=frozenset({200}),
        openapi_keywords=("users", "accounts", "transactions", "cards"),
    ),
}
