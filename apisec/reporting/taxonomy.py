"""
OWASP API Security Top 10 (2023) lookup table.

Keys are stable identifiers used by probes; the entry text is what ends up
in reports. The table is read-only: build a different mapping and pass it
to ``SecurityReporter`` to substitute it.
"""

from collections.abc import Mapping
from types import MappingProxyType

from apisec.models.results import RiskLevel, TaxonomyEntry

_ENTRIES: dict[str, TaxonomyEntry] = {
    "API1_BOLA": TaxonomyEntry(
        name="API1:2023 - Broken Object Level Authorization",
        description=(
            "Attackers can exploit API endpoints that are vulnerable to broken object level "
            "authorization by manipulating the ID of an object sent within the request."
        ),
        risk_level=RiskLevel.CRITICAL,
        recommendations=(
            "Implement proper authorization checks for every object access",
            "Validate user permissions before returning sensitive data",
            "Use random, unpredictable resource identifiers (UUIDs)",
            "Avoid exposing internal object IDs in API responses",
            "Log and monitor all object access attempts",
        ),
        remediation_steps=(
            "1. Review all endpoints that accept object IDs",
            "2. Implement authorization middleware that validates ownership",
            "3. Add unit tests for authorization on all resource endpoints",
            "4. Use policy-based authorization (e.g., RBAC, ABAC)",
            "5. Implement audit logging for sensitive resource access",
        ),
        references=(
            "https://owasp.org/API-Security/editions/2023/en/0xa1-broken-object-level-authorization/",
            "https://cheatsheetseries.owasp.org/cheatsheets/Authorization_Cheat_Sheet.html",
        ),
    ),
    "API2_AUTH": TaxonomyEntry(
        name="API2:2023 - Broken Authentication",
        description=(
            "Authentication mechanisms are often implemented incorrectly, allowing attackers to "
            "compromise authentication tokens or exploit implementation flaws."
        ),
        risk_level=RiskLevel.CRITICAL,
        recommendations=(
            "Use industry-standard authentication mechanisms (OAuth 2.0, OpenID Connect)",
            "Implement strong password policies and MFA",
            "Use secure session management with proper timeouts",
            "Protect credentials in transit and at rest",
            "Implement account lockout mechanisms after failed attempts",
        ),
        remediation_steps=(
            "1. Audit all authentication endpoints and flows",
            "2. Implement rate limiting on authentication endpoints",
            "3. Use bcrypt/argon2 for password hashing (cost factor >= 12)",
            "4. Implement JWT with short expiration times",
            "5. Add refresh token rotation mechanism",
            "6. Enable MFA for sensitive operations",
        ),
        references=(
            "https://owasp.org/API-Security/editions/2023/en/0xa2-broken-authentication/",
            "https://cheatsheetseries.owasp.org/cheatsheets/Authentication_Cheat_Sheet.html",
        ),
    ),
    "API3_DATA_EXPOSURE": TaxonomyEntry(
        name="API3:2023 - Broken Object Property Level Authorization",
        description=(
            "APIs tend to expose sensitive object properties without proper filtering, "
            "leading to excessive data exposure."
        ),
        risk_level=RiskLevel.HIGH,
        recommendations=(
            "Never include sensitive fields in API responses (passwords, tokens, etc.)",
            "Implement response filtering based on user permissions",
            "Use Data Transfer Objects (DTOs) to control exposed fields",
            "Validate and sanitize all API responses",
            "Document what data should be exposed for each endpoint",
        ),
        remediation_steps=(
            "1. Audit all API responses for sensitive data exposure",
            "2. Create serializers/DTOs that explicitly define allowed fields",
            "3. Remove password hashes, tokens, and internal IDs from responses",
            "4. Implement field-level authorization checks",
            "5. Add automated tests to detect sensitive data in responses",
            "6. Use allow-lists instead of block-lists for field exposure",
        ),
        references=(
            "https://owasp.org/API-Security/editions/2023/en/0xa3-broken-object-property-level-authorization/",
            "https://cheatsheetseries.owasp.org/cheatsheets/Mass_Assignment_Cheat_Sheet.html",
        ),
    ),
    "API4_RATE_LIMIT": TaxonomyEntry(
        name="API4:2023 - Unrestricted Resource Consumption",
        description=(
            "APIs often do not impose restrictions on the size or number of resources that "
            "can be requested, leaving them vulnerable to DoS attacks."
        ),
        risk_level=RiskLevel.HIGH,
        recommendations=(
            "Implement rate limiting on all API endpoints",
            "Set maximum page sizes for paginated responses",
            "Add request timeouts and payload size limits",
            "Monitor and alert on unusual traffic patterns",
            "Use API gateways for centralized rate limiting",
        ),
        remediation_steps=(
            "1. Implement rate limiting middleware (e.g., 100 requests/minute per user)",
            "2. Add rate limit headers (X-RateLimit-Limit, X-RateLimit-Remaining)",
            "3. Return 429 status code when rate limit exceeded",
            "4. Set maximum request body size (e.g., 10MB)",
            "5. Implement pagination with maximum page size (e.g., 100 items)",
            "6. Add request queue monitoring and alerting",
            "7. Consider implementing CAPTCHA for public endpoints",
        ),
        references=(
            "https://owasp.org/API-Security/editions/2023/en/0xa4-unrestricted-resource-consumption/",
            "https://cheatsheetseries.owasp.org/cheatsheets/Denial_of_Service_Cheat_Sheet.html",
        ),
    ),
    "API5_BFLA": TaxonomyEntry(
        name="API5:2023 - Broken Function Level Authorization",
        description=(
            "Access control policies are often poorly enforced, allowing unauthorized users "
            "to access administrative functions."
        ),
        risk_level=RiskLevel.CRITICAL,
        recommendations=(
            "Deny access by default to all administrative functions",
            "Implement role-based access control (RBAC)",
            "Verify user roles/permissions on every request",
            "Separate admin and user API endpoints clearly",
            "Audit administrative function access regularly",
        ),
        remediation_steps=(
            "1. Map all API endpoints and required permissions",
            "2. Implement authorization middleware for all routes",
            "3. Use decorators/annotations for permission requirements",
            "4. Add integration tests for authorization on all endpoints",
            '5. Review and remove any "admin" parameters in requests',
            "6. Implement principle of least privilege",
        ),
        references=(
            "https://owasp.org/API-Security/editions/2023/en/0xa5-broken-function-level-authorization/",
            "https://cheatsheetseries.owasp.org/cheatsheets/Authorization_Cheat_Sheet.html",
        ),
    ),
    "API6_MASS_ASSIGNMENT": TaxonomyEntry(
        name="API6:2023 - Unrestricted Access to Sensitive Business Flows",
        description=(
            "Mass assignment vulnerabilities occur when APIs automatically bind request "
            "parameters to internal objects, allowing attackers to modify sensitive fields."
        ),
        risk_level=RiskLevel.HIGH,
        recommendations=(
            "Use allowlists for bindable object properties",
            "Never allow mass assignment of sensitive fields (isAdmin, role, etc.)",
            "Validate and sanitize all input data",
            "Use separate DTOs for create/update operations",
            "Implement explicit field assignment instead of automatic binding",
        ),
        remediation_steps=(
            "1. Identify all endpoints that accept object creation/updates",
            "2. Create explicit DTOs with only allowed fields",
            "3. Disable automatic parameter binding in your framework",
            "4. Add validation for sensitive fields (role, permissions, etc.)",
            "5. Use readonly decorators for fields that should never be updated",
            "6. Add tests that attempt to modify sensitive fields",
            "7. Review and remove any privilege escalation possibilities",
        ),
        references=(
            "https://owasp.org/API-Security/editions/2023/en/0xa6-unrestricted-access-to-sensitive-business-flows/",
            "https://cheatsheetseries.owasp.org/cheatsheets/Mass_Assignment_Cheat_Sheet.html",
        ),
    ),
    "API7_MISCONFIGURATION": TaxonomyEntry(
        name="API7:2023 - Server Side Request Forgery",
        description=(
            "Security misconfigurations include missing security headers, verbose error "
            "messages, and exposed sensitive information."
        ),
        risk_level=RiskLevel.MEDIUM,
        recommendations=(
            "Implement all recommended security headers",
            "Disable detailed error messages in production",
            "Remove server version information from headers",
            "Use HTTPS for all API communications",
            "Regularly update and patch dependencies",
        ),
        remediation_steps=(
            "1. Add Content-Security-Policy header",
            "2. Add X-Frame-Options: DENY or SAMEORIGIN",
            "3. Add X-Content-Type-Options: nosniff",
            "4. Add Strict-Transport-Security header (HSTS)",
            "5. Remove or obscure Server and X-Powered-By headers",
            "6. Configure proper CORS policies",
            "7. Disable debug mode and verbose error messages in production",
            "8. Implement centralized error handling with sanitized messages",
        ),
        references=(
            "https://owasp.org/API-Security/editions/2023/en/0xa7-server-side-request-forgery/",
            "https://cheatsheetseries.owasp.org/cheatsheets/HTTP_Headers_Cheat_Sheet.html",
        ),
    ),
    "API8_INJECTION": TaxonomyEntry(
        name="API8:2023 - Security Misconfiguration",
        description=(
            "Injection flaws occur when untrusted data is sent as part of a command or query, "
            "allowing attackers to execute unintended commands."
        ),
        risk_level=RiskLevel.CRITICAL,
        recommendations=(
            "Use parameterized queries (prepared statements) for all database access",
            "Validate and sanitize all user input",
            "Implement input validation with allowlists",
            "Use ORM/query builders instead of raw SQL",
            "Escape special characters in user input",
        ),
        remediation_steps=(
            "1. Replace all string concatenation in queries with parameterized queries",
            "2. Implement input validation middleware",
            "3. Use ORM frameworks with built-in protection",
            "4. Add Web Application Firewall (WAF) rules",
            "5. Implement least-privilege database access",
            "6. Sanitize error messages to avoid information disclosure",
            "7. Add automated SAST/DAST scanning for injection vulnerabilities",
            "8. Review and test all data processing endpoints",
        ),
        references=(
            "https://owasp.org/API-Security/editions/2023/en/0xa8-security-misconfiguration/",
            "https://cheatsheetseries.owasp.org/cheatsheets/SQL_Injection_Prevention_Cheat_Sheet.html",
            "https://cheatsheetseries.owasp.org/cheatsheets/Injection_Prevention_Cheat_Sheet.html",
        ),
    ),
    "API9_ASSET_MGMT": TaxonomyEntry(
        name="API9:2023 - Improper Inventory Management",
        description="Old API versions or debug endpoints left accessible can provide attack vectors.",
        risk_level=RiskLevel.MEDIUM,
        recommendations=(
            "Maintain an inventory of all API versions and endpoints",
            "Deprecate and remove old API versions",
            "Disable debug endpoints in production",
            "Use API versioning strategy consistently",
            "Document all API endpoints and their security requirements",
        ),
        remediation_steps=(
            "1. Create comprehensive API documentation",
            "2. Implement API versioning (e.g., /api/v1/, /api/v2/)",
            "3. Set sunset dates for old API versions",
            "4. Remove or secure debug/test endpoints",
            "5. Use environment-specific configurations",
            "6. Implement API discovery and inventory tools",
            "7. Regularly audit exposed endpoints",
        ),
        references=(
            "https://owasp.org/API-Security/editions/2023/en/0xa9-improper-inventory-management/",
            "https://owasp.org/www-project-api-security/",
        ),
    ),
    "API10_LOGGING": TaxonomyEntry(
        name="API10:2023 - Unsafe Consumption of APIs",
        description=(
            "Insufficient logging and monitoring allow attacks to go undetected and "
            "facilitate damage assessment."
        ),
        risk_level=RiskLevel.MEDIUM,
        recommendations=(
            "Log all authentication attempts, failures, and access control violations",
            "Implement centralized logging with proper retention",
            "Set up real-time alerting for security events",
            "Never log sensitive data (passwords, tokens, PII)",
            "Monitor for unusual patterns and anomalies",
        ),
        remediation_steps=(
            "1. Implement structured logging throughout the application",
            "2. Log security-relevant events (auth failures, permission denials)",
            "3. Add correlation IDs for request tracking",
            "4. Set up log aggregation (e.g., ELK Stack, Splunk)",
            "5. Create alerts for suspicious patterns",
            "6. Implement log integrity protection",
            "7. Define log retention policies",
            "8. Regularly review logs and create incident response procedures",
        ),
        references=(
            "https://owasp.org/API-Security/editions/2023/en/0xaa-unsafe-consumption-of-apis/",
            "https://cheatsheetseries.owasp.org/cheatsheets/Logging_Cheat_Sheet.html",
        ),
    ),
}

TAXONOMY: Mapping[str, TaxonomyEntry] = MappingProxyType(_ENTRIES)


def resolve_category(category: str | None, taxonomy: Mapping[str, TaxonomyEntry] = TAXONOMY) -> str:
    """Taxonomy key -> display name; anything else is used verbatim."""
    if not category:
        return "N/A"
    entry = taxonomy.get(category)
    return entry.name if entry else category
