from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

from apisec.models.exchange import ResponseSnapshot


class Capability(str, Enum):
    """What a discovered endpoint is for."""
    REGISTER = "register"
    LOGIN = "login"
    RESOURCE_LIST = "resource-list"


class EndpointCandidate(BaseModel):
    """A guess at where a capability lives."""
    model_config = ConfigDict(frozen=True)

    path: str
    method: str = "POST"
    content_type: Literal["json", "form"] = "json"


class Attempt(BaseModel):
    """One discovery probe and what came back."""
    model_config = ConfigDict(frozen=True)

    endpoint: str                    # "<path> (<kind>)"
    status: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_response(cls, endpoint: str, resp: ResponseSnapshot) -> "Attempt":
        if resp.failed:
            return cls(endpoint=endpoint, error=resp.error or "no response")
        return cls(endpoint=endpoint, status=resp.status_code)

    def describe(self) -> str:
        return f"{self.endpoint} -> {self.status if self.status is not None else self.error}"


class Located(BaseModel):
    """Discovery succeeded."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["located"] = "located"
    response: ResponseSnapshot
    candidate: EndpointCandidate
    strategy: str
    attempts: list[Attempt] = []


class Exhausted(BaseModel):
    """Every tier ran out of candidates."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["exhausted"] = "exhausted"
    capability: Capability
    attempts: list[Attempt] = []

    def describe(self) -> str:
        tried = ", ".join(a.describe() for a in self.attempts) or "nothing"
        return f"no {self.capability.value} endpoint found (tried: {tried})"


DiscoveryOutcome = Union[Located, Exhausted]
