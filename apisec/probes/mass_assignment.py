"""
Mass assignment probes.

Each probe sends a legitimate body plus privileged fields and checks whether
the server bound them: echoed back with the attacker's value (camelCase or
snake_case, one level of nesting) or visible on a follow-up GET of the
created resource. Dropping the fields or rejecting the request with any 4xx
other than 404/405 passes. A 401 only means the request never reached the
binding code, so the next endpoint is tried.
"""

import logging
import re
from typing import Any

from apisec.auth.helper import auth_headers
from apisec.discovery.capabilities import REGISTER_PATHS
from apisec.models.discovery import Attempt
from apisec.models.exchange import ResponseSnapshot
from apisec.probes.base import BaseProbe, ProbeContext, excerpt, is_absent, walk_items
from apisec.transport import send

log = logging.getLogger(__name__)

_ID_KEYS = ("id", "_id", "userId", "user_id", "cardId", "card_id")

_ALIASES = {"isAdmin": ("admin",)}


def snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def accepted_fields(body: Any, privileged: dict[str, Any]) -> list[str]:
    """Privileged keys that appear in *body* carrying the value we sent."""
    accepted: list[str] = []
    items = list(walk_items(body, depth=2))
    for key, value in privileged.items():
        names = {key, snake_case(key), *_ALIASES.get(key, ())}
        if any(k in names and v == value for k, v in items):
            accepted.append(key)
    return accepted


def resource_id(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    scopes = [body] + [body[k] for k in ("data", "user", "card") if isinstance(body.get(k), dict)]
    for scope in scopes:
        for key in _ID_KEYS:
            if scope.get(key) not in (None, ""):
                return str(scope[key])
    return None


class MassAssignmentProbe(BaseProbe):
    category = "API6_MASS_ASSIGNMENT"

    paths: tuple[str, ...] = ()
    methods: tuple[str, ...] = ("POST",)
    privileged: dict[str, Any] = {}
    needs_session: bool = False

    def legit_body(self, ctx: ProbeContext) -> dict:
        return {}

    def request_body(self, ctx: ProbeContext) -> dict:
        body = dict(self.legit_body(ctx))
        for key, value in self.privileged.items():
            body[key] = value
            body.setdefault(snake_case(key), value)
        return body

    async def run(self, ctx: ProbeContext) -> None:
        headers: dict = {}
        if self.needs_session:
            session = await ctx.auth.ensure_session()
            if session is None:
                ctx.reporter.report_skip("could not establish an authenticated session")
                return
            headers = auth_headers(session)

        body = self.request_body(ctx)
        attempts: list[Attempt] = []
        inconclusive: list[dict] = []

        for path in self.paths:
            for method in self.methods:
                resp = await send(ctx.client, method, path, json_body=body, headers=headers)
                attempts.append(Attempt.from_response(f"{path} ({method})", resp))
                if is_absent(resp) or resp.status_code == 401:
                    continue
                if 400 <= resp.status_code < 500:
                    ctx.reporter.report_pass(
                        f"{method} {path} rejected privileged fields with HTTP {resp.status_code}",
                        self.category,
                    )
                    return
                if resp.ok and resp.json_body() is not None:
                    await self._judge(ctx, method, path, body, resp, headers)
                    return
                inconclusive.append({"endpoint": path, "method": method, "status": resp.status_code,
                                     "response_excerpt": excerpt(resp.text)})

        if inconclusive:
            ctx.reporter.report_warning(
                "Privileged fields were sent but the response could not be inspected: "
                + ", ".join(f"{i['method']} {i['endpoint']} -> {i['status']}" for i in inconclusive),
                ["Review the endpoint manually for mass assignment"],
                self.category,
            )
        else:
            ctx.reporter.report_skip(
                "no endpoint accepted the request (tried: "
                + ", ".join(a.describe() for a in attempts) + ")"
            )

    async def _judge(
        self, ctx: ProbeContext, method: str, path: str, body: dict,
        resp: ResponseSnapshot, headers: dict,
    ) -> None:
        response_json = resp.json_body()
        accepted = accepted_fields(response_json, self.privileged)
        source = "response"

        if not accepted:
            rid = resource_id(response_json)
            if rid is not None:
                follow = await send(ctx.client, "GET", f"{path.rstrip('/')}/{rid}", headers=headers)
                if follow.ok:
                    accepted = accepted_fields(follow.json_body(), self.privileged)
                    source = f"GET {path.rstrip('/')}/{rid}"

        if accepted:
            ctx.reporter.report_vulnerability(self.category, {
                "endpoint": path,
                "method": method,
                "request": body,
                "response": response_json,
                "acceptedFields": accepted,
                "observedIn": source,
                "issue": f"Privileged fields bound from the request: {', '.join(accepted)}",
            })
        else:
            ctx.reporter.report_pass(
                f"{method} {path} ignored privileged fields ({', '.join(self.privileged)})",
                self.category,
            )


class _UserCreateProbe(MassAssignmentProbe):
    paths = tuple(REGISTER_PATHS)

    def legit_body(self, ctx: ProbeContext) -> dict:
        user = ctx.store.create_random("mass", persist=False)
        return {"name": user.username, "username": user.username, "email": user.email, "password": user.password}


class AdminFlagProbe(_UserCreateProbe):
    name = "mass-assign-admin"
    title = "Mass assignment: isAdmin on user creation"
    privileged = {"isAdmin": True}


class RoleProbe(_UserCreateProbe):
    name = "mass-assign-role"
    title = "Mass assignment: role on user creation"
    privileged = {"role": "admin"}


class CardLimitProbe(MassAssignmentProbe):
    name = "mass-assign-card-limit"
    title = "Mass assignment: card limit and owner on card update"
    paths = (
        "/api/cards/1", "/api/cards/1/limits", "/api/cards/1/limit", "/api/cards/1/update",
        "/api/cards/update", "/api/cards", "/api/virtual-cards/1", "/api/virtual-cards/1/limits",
    )
    methods = ("PATCH", "PUT", "POST")
    privileged = {"limit": 5000000, "daily_limit": 5000000, "ownerId": "attacker-owner-id", "isAdmin": True}
    needs_session = True

    def legit_body(self, ctx: ProbeContext) -> dict:
        return {"nickname": "apisec"}


class VirtualCardCreateProbe(MassAssignmentProbe):
    name = "mass-assign-virtual-card"
    title = "Mass assignment: limits and owner on virtual card creation"
    paths = (
        "/api/virtual-cards/create", "/api/virtual-cards", "/virtual-cards/create",
        "/virtual-cards", "/api/v1/virtual-cards",
    )
    privileged = {"limit": 5000000, "daily_limit": 5000000, "ownerId": "attacker-owner-id"}
    needs_session = True

    def legit_body(self, ctx: ProbeContext) -> dict:
        return {"name": "apisec card", "currency": "USD"}
