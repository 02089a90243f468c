"""HTTP transport helpers shared by the REST gateway and REST auth provider.

Updates: v0.1.0 - 2026-09-22 - Map HTTP status codes onto the library error taxonomy.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .exceptions import (
    AuthError,
    NotFoundError,
    PromptLibraryError,
    TransportError,
    ValidationError,
)

logger = logging.getLogger("prompt_library.transport")

_VALIDATION_STATUSES = {400, 409, 422}
_AUTH_STATUSES = {401, 403}


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return response.reason_phrase


def error_for_response(
    response: httpx.Response,
    *,
    kind: str | None = None,
    entity_id: str | None = None,
) -> PromptLibraryError:
    """Return the library error matching an unsuccessful *response*."""
    status = response.status_code
    detail = _error_detail(response)
    if status in _VALIDATION_STATUSES:
        return ValidationError(detail)
    if status == 401:
        return AuthError(detail or "Sign in required")
    if status in _AUTH_STATUSES:
        return AuthError(detail or "Not permitted")
    if status == 404:
        return NotFoundError(detail or "Not found", kind=kind, entity_id=entity_id)
    return TransportError(f"HTTP {status}: {detail}", status_code=status)


def translate_httpx_error(
    exc: httpx.HTTPError,
    *,
    kind: str | None = None,
    entity_id: str | None = None,
) -> PromptLibraryError:
    """Return the library error for an exception raised by httpx."""
    if isinstance(exc, httpx.HTTPStatusError):
        return error_for_response(exc.response, kind=kind, entity_id=entity_id)
    logger.warning("HTTP transport failure: %s", exc)
    return TransportError(f"Request failed: {exc}")


def decode_json(response: httpx.Response) -> Any:
    """Return the JSON body of *response* or raise :class:`TransportError`."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise TransportError("Server returned invalid JSON") from exc


def is_auth_failure(status_code: int) -> bool:
    """Return ``True`` for statuses that invalidate stored credentials."""
    return status_code == 401


__all__ = [
    "decode_json",
    "error_for_response",
    "is_auth_failure",
    "translate_httpx_error",
]
