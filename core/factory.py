"""Factories for constructing PromptLibrary instances from validated settings.

Updates:
  v0.2.0 - 2026-10-06 - Share one CredentialStore between REST auth and the REST gateway.
  v0.1.1 - 2026-09-30 - Wire the SQLite backend and retry policy from settings.
  v0.1.0 - 2026-09-26 - Introduce build_prompt_library.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .auth import AuthProvider, CredentialStore, LocalAuthProvider, RestAuthProvider
from .filtering import FilterState, SortOption
from .gateway import LocalPromptStore, RestPromptStore, SqlitePromptStore
from .library import PromptLibrary
from .notifications import NotificationCenter
from .retry import RetryPolicy
from .state import LibraryState

if TYPE_CHECKING:  # pragma: no cover - typing only
    from collections.abc import Callable

    import httpx

    from config import PromptLibrarySettings

    from .gateway import PromptStore, UserResolver

factory_logger = logging.getLogger("prompt_library.factory")


def build_auth_provider(
    settings: PromptLibrarySettings,
    *,
    credentials: CredentialStore,
    client_factory: Callable[[], httpx.AsyncClient] | None = None,
) -> AuthProvider:
    """Return the auth provider matching the configured backend."""
    if settings.backend == "rest":
        return RestAuthProvider(
            base_url=str(settings.api_base_url),
            credentials=credentials,
            timeout=settings.api_timeout_seconds,
            client_factory=client_factory,
        )
    return LocalAuthProvider(settings.auth_store_path, credentials=credentials)


def build_prompt_store(
    settings: PromptLibrarySettings,
    *,
    credentials: CredentialStore,
    current_user: UserResolver,
    client_factory: Callable[[], httpx.AsyncClient] | None = None,
) -> PromptStore:
    """Return the backend gateway selected by ``settings.backend``."""
    if settings.backend == "rest":
        return RestPromptStore(
            base_url=str(settings.api_base_url),
            credentials=credentials,
            timeout=settings.api_timeout_seconds,
            retry_policy=RetryPolicy(max_attempts=settings.api_max_attempts),
            client_factory=client_factory,
        )
    if settings.backend == "sqlite":
        return SqlitePromptStore(settings.sqlite_path, current_user=current_user)
    return LocalPromptStore(settings.local_store_path, current_user=current_user)


def build_prompt_library(
    settings: PromptLibrarySettings,
    *,
    store: PromptStore | None = None,
    auth: AuthProvider | None = None,
    credentials: CredentialStore | None = None,
    notification_center: NotificationCenter | None = None,
    client_factory: Callable[[], httpx.AsyncClient] | None = None,
) -> PromptLibrary:
    """Return a PromptLibrary configured from validated settings.

    Explicit *store* and *auth* arguments take precedence over the
    configured backend, which keeps tests free of files and sockets.
    """
    resolved_credentials = credentials or CredentialStore()
    resolved_auth = auth or build_auth_provider(
        settings, credentials=resolved_credentials, client_factory=client_factory
    )
    resolved_store = store or build_prompt_store(
        settings,
        credentials=resolved_credentials,
        current_user=resolved_auth.current_user,
        client_factory=client_factory,
    )
    initial = LibraryState(filters=FilterState(sort_option=SortOption(settings.default_sort)))
    factory_logger.info(
        "Prompt library configured",
        extra={"backend": settings.backend, "store": type(resolved_store).__name__},
    )
    return PromptLibrary(
        resolved_store,
        auth=resolved_auth,
        notifications=notification_center or NotificationCenter(),
        initial_state=initial,
    )


__all__ = ["build_auth_provider", "build_prompt_library", "build_prompt_store"]
