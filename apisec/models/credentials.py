from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class TestUser(BaseModel):
    """A stored test account. At least one of email / username is set."""
    model_config = ConfigDict(frozen=True)

    # keep pytest from collecting this model as a test class
    __test__ = False

    username: Optional[str] = None
    email: Optional[str] = None
    password: str

    @model_validator(mode="after")
    def _require_identity(self) -> "TestUser":
        if not self.email and not self.username:
            raise ValueError("a test user needs an email or a username")
        return self

    @property
    def identity(self) -> str:
        """Login identifier: email when present, otherwise username."""
        return self.email or self.username or ""

    def matches(self, other: "TestUser") -> bool:
        """Same account if email or username are equal (only compared when both set)."""
        if self.email and other.email and self.email == other.email:
            return True
        if self.username and other.username and self.username == other.username:
            return True
        return False
