from typing import Optional

from pydantic import BaseModel, ConfigDict

from apisec.models.exchange import ResponseSnapshot


class AuthContext(BaseModel):
    """Credentials a probe presents on its requests. Never shared between probes."""
    model_config = ConfigDict(frozen=True)

    token: Optional[str] = None
    cookie_header: Optional[str] = None
    identity: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.token and not self.cookie_header


class LoginResult(BaseModel):
    """A login candidate that answered with a success status."""
    model_config = ConfigDict(frozen=True)

    response: ResponseSnapshot
    path: str
    content_type: str = "json"
    token: Optional[str] = None
    cookie_header: Optional[str] = None

    def to_context(self, identity: Optional[str] = None) -> AuthContext:
        return AuthContext(token=self.token, cookie_header=self.cookie_header, identity=identity)
