"""
Probe registry: CLI name -> probe class, in execution order.
"""

from apisec.probes.abuse import BruteForceLockoutProbe, LoginRateLimitProbe, PayloadSizeProbe, PublicRateLimitProbe
from apisec.probes.authorization import DataExposureProbe, ErrorHandlingProbe, FunctionLevelAuthProbe, IdorProbe
from apisec.probes.base import BaseProbe
from apisec.probes.csrf import CsrfProbe
from apisec.probes.fuzzing import BoundaryValueProbe, MalformedJsonProbe, UnicodeInputProbe
from apisec.probes.headers import CorsProbe, CspProbe, HeaderDisclosureProbe, SecurityHeadersProbe
from apisec.probes.injection import NoSqlInjectionProbe, SqlInjectionLoginProbe, SqlInjectionQueryProbe
from apisec.probes.mass_assignment import AdminFlagProbe, CardLimitProbe, RoleProbe, VirtualCardCreateProbe
from apisec.probes.session import CookieFlagsProbe, JwtIntegrityProbe, LogoutInvalidationProbe, SessionFixationProbe
from apisec.probes.supply_chain import SubresourceIntegrityProbe
from apisec.probes.traversal import PathTraversalProbe
from apisec.probes.xss import ReflectedXssProbe

# Burst probes (payload size, rate limits, lockout) stay at the end
PROBES: dict[str, type[BaseProbe]] = {
    cls.name: cls
    for cls in [
        SqlInjectionLoginProbe,
        SqlInjectionQueryProbe,
        NoSqlInjectionProbe,
        PathTraversalProbe,
        ReflectedXssProbe,
        AdminFlagProbe,
        RoleProbe,
        CardLimitProbe,
        VirtualCardCreateProbe,
        BoundaryValueProbe,
        UnicodeInputProbe,
        MalformedJsonProbe,
        SecurityHeadersProbe,
        HeaderDisclosureProbe,
        CorsProbe,
        CspProbe,
        SubresourceIntegrityProbe,
        CookieFlagsProbe,
        SessionFixationProbe,
        JwtIntegrityProbe,
        CsrfProbe,
        IdorProbe,
        DataExposureProbe,
        FunctionLevelAuthProbe,
        ErrorHandlingProbe,
        LogoutInvalidationProbe,
        PayloadSizeProbe,
        PublicRateLimitProbe,
        LoginRateLimitProbe,
        BruteForceLockoutProbe,
    ]
}


def get_probes(names: list[str] | None = None) -> list[BaseProbe]:
    """Instantiate the named probes (all of them when *names* is empty).

    Raises ``KeyError`` naming the first unknown probe.
    """
    if not names:
        return [cls() for cls in PROBES.values()]
    unknown = [n for n in names if n not in PROBES]
    if unknown:
        raise KeyError(f"unknown probe: {unknown[0]} (available: {', '.join(PROBES)})")
    return [PROBES[n]() for n in names]
