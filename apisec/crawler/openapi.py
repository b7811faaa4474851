"""Helpers for reading OpenAPI / Swagger documents."""

from typing import Any

# Served by most frameworks; tried after links found in a Swagger UI page
EXTRA_SPEC_PATHS = ["/openapi.json", "/swagger.json", "/v3/api-docs", "/api/docs.json", "/api-docs"]

DOC_PATHS = ["/openapi.json", "/swagger.json", "/v3/api-docs", "/api/docs", "/api/docs.json"]


def is_openapi_document(doc: Any) -> bool:
    return isinstance(doc, dict) and isinstance(doc.get("paths"), dict)


def find_operations(doc: dict, keywords: list[str], method: str) -> list[str]:
    """Paths whose name contains a keyword and that declare *method*.

    Matching is case-insensitive. Swagger 2 ``basePath`` is prefixed.
    """
    base = (doc.get("basePath") or "").rstrip("/")
    method = method.lower()
    wanted = [k.lower() for k in keywords]
    hits: list[str] = []
    for path, ops in doc["paths"].items():
        if not isinstance(ops, dict) or method not in {m.lower() for m in ops}:
            continue
        if any(k in path.lower() for k in wanted):
            hits.append(f"{base}{path}")
    return hits
