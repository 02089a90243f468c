"""Common exception classes for the core package.

Every failure raised by gateways, auth providers, versioning helpers, and the
mutation engine inherits from :class:`PromptLibraryError`, so callers can catch
one base class while still distinguishing the four categories the library
reacts to differently:

* :class:`ValidationError` blocks dispatch before anything is applied locally.
* :class:`AuthError` signals a missing sign-in or a permission failure.
* :class:`NotFoundError` marks a stale identifier; the engine drops the
  dangling local entity it names.
* :class:`TransportError` covers network and storage failures; the engine
  rolls back and does not retry.

Updates:
  v0.2.0 - 2026-09-16 - Attach entity kind and identifier to NotFoundError.
  v0.1.0 - 2026-09-02 - Created module with the library error taxonomy.
"""

from __future__ import annotations


class PromptLibraryError(Exception):
    """Base exception for Prompt Library failures."""


class ValidationError(PromptLibraryError):
    """Raised when input is malformed (empty title, unknown patch field, ...)."""


class AuthError(PromptLibraryError):
    """Raised when the caller is signed out or lacks permission."""


class NotFoundError(PromptLibraryError):
    """Raised when an entity identifier is unknown to the backing store."""

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        entity_id: str | None = None,
    ) -> None:
        """Store the entity *kind* ("prompt", "collection", "tag") and identifier."""
        super().__init__(message)
        self.kind = kind
        self.entity_id = entity_id


class TransportError(PromptLibraryError):
    """Raised when the network or persistent storage fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Store an optional HTTP *status_code* alongside the message."""
        super().__init__(message)
        self.status_code = status_code


def prompt_not_found(prompt_id: str) -> NotFoundError:
    """Return a :class:`NotFoundError` describing a missing prompt."""
    return NotFoundError(f"Prompt {prompt_id} not found", kind="prompt", entity_id=prompt_id)


def collection_not_found(collection_id: str) -> NotFoundError:
    """Return a :class:`NotFoundError` describing a missing collection."""
    return NotFoundError(
        f"Collection {collection_id} not found",
        kind="collection",
        entity_id=collection_id,
    )


def tag_not_found(tag_id: str) -> NotFoundError:
    """Return a :class:`NotFoundError` describing a missing tag."""
    return NotFoundError(f"Tag {tag_id} not found", kind="tag", entity_id=tag_id)


__all__ = [
    "AuthError",
    "NotFoundError",
    "PromptLibraryError",
    "TransportError",
    "ValidationError",
    "collection_not_found",
    "prompt_not_found",
    "tag_not_found",
]
