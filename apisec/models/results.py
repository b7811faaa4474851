from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RiskLevel(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"


class ProbeStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    SKIP = "SKIP"
    WARNING = "WARNING"


class TaxonomyEntry(BaseModel):
    """Static description of one vulnerability class."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    risk_level: RiskLevel
    recommendations: tuple[str, ...] = ()
    remediation_steps: tuple[str, ...] = ()
    references: tuple[str, ...] = ()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProbeResult(BaseModel):
    """Outcome of one check inside a scenario. Immutable once reported."""
    model_config = ConfigDict(frozen=True)

    test_name: str
    status: ProbeStatus
    owasp_category: str = ""
    vulnerability: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    description: str = Field(min_length=1)
    evidence: Optional[Any] = None
    recommendations: tuple[str, ...] = ()
    remediation_steps: tuple[str, ...] = ()
    references: tuple[str, ...] = ()
    timestamp: str = Field(default_factory=_now)
