"""OpenAPI customization.

Documents the edge contract in the generated schema:
- ``csrf-token`` cookie security scheme, required on every operation except
  the health check
- the ``X-RateLimit-*`` headers and the 403/429 rejection bodies
- tag descriptions
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from siwes_guard.core.config import Settings

_REJECTION_SCHEMA = {
    "type": "object",
    "properties": {
        "success": {"type": "boolean", "enum": [False]},
        "error": {"type": "string"},
        "retryAfter": {"type": "integer"},
    },
    "required": ["success", "error"],
}

_RATE_LIMIT_HEADERS = {
    "X-RateLimit-Limit": {"schema": {"type": "integer"}},
    "X-RateLimit-Remaining": {"schema": {"type": "integer"}},
    "X-RateLimit-Reset": {
        "schema": {"type": "integer"},
        "description": "Window reset time in epoch milliseconds.",
    },
}


def apply_openapi_customizations(app: FastAPI, settings: Settings) -> None:
    """Patch FastAPI's OpenAPI generation with the edge guard contract."""

    original_openapi = app.openapi
    cookie_name = settings.csrf.cookie_name
    exempt_prefixes = tuple(settings.rate_limit.exempt_prefixes)

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = original_openapi()

        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {}).setdefault(
            "CsrfCookie",
            {
                "type": "apiKey",
                "in": "cookie",
                "name": cookie_name,
                "description": (
                    "Anti-forgery token issued on any GET. Required on "
                    "POST/PUT/PATCH/DELETE outside the exempt prefixes."
                ),
            },
        )
        components.setdefault("schemas", {}).setdefault("Rejection", _REJECTION_SCHEMA)

        schema.setdefault("security", [{"CsrfCookie": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in (
            {"name": "Health", "description": "Liveness check."},
            {"name": "Security", "description": "CSRF token and rate-limit introspection."},
        ):
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        rejection_ref = {"$ref": "#/components/schemas/Rejection"}
        for path, methods in schema.get("paths", {}).items():
            exempt = path.startswith(exempt_prefixes)
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                responses = method_obj.setdefault("responses", {})
                if exempt:
                    method_obj["security"] = []
                    continue
                responses.setdefault(
                    "403",
                    {
                        "description": "CSRF token missing, malformed or expired",
                        "content": {"application/json": {"schema": rejection_ref}},
                    },
                )
                responses.setdefault(
                    "429",
                    {
                        "description": "Rate limit exceeded",
                        "headers": {"Retry-After": {"schema": {"type": "integer"}}},
                        "content": {"application/json": {"schema": rejection_ref}},
                    },
                )
                for status_code, response_obj in responses.items():
                    if str(status_code).startswith("2") and isinstance(response_obj, dict):
                        response_obj.setdefault("headers", {}).update(_RATE_LIMIT_HEADERS)

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
