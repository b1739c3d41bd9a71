from __future__ import annotations

from typing import Any

from tagmap.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": example}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: _response(
        "Unauthorized",
        _error_example(code="AUTH_UNAUTHORIZED", message="Invalid or expired token"),
    ),
    403: _response(
        "Forbidden",
        _error_example(code="AUTH_FORBIDDEN", message="User is not logged in"),
    ),
    404: _response(
        "Not found",
        _error_example(code="NOT_FOUND", message="Tag 3f2c9a not found"),
    ),
    422: _response(
        "Validation error",
        _error_example(
            code="VALIDATION_ERROR",
            message="coordinates.latitude must be within ±90",
        ),
    ),
    500: _response(
        "Internal server error",
        _error_example(code="INTERNAL_ERROR", message="Internal server error"),
    ),
}

# Routes callable without a bearer token.
PUBLIC_PATHS = {
    "/v1/health",
    "/v1/tags",
    "/v1/tags/{tag_id}",
    "/v1/users/{uid}/tags",
    "/v1/archived-threshold",
    "/v1/subscriptions/archived-threshold",
    "/v1/subscriptions/tag-changes",
}
