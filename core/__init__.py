"""Core service layer for Prompt Library.

Updates:
  v0.3.0 - 2026-10-06 - Export build_prompt_library factory for shared bootstrap.
  v0.2.0 - 2026-09-28 - Surface PromptLibrary, mutation handles, and state snapshots.
  v0.1.0 - 2026-09-06 - Surface gateways, errors, and the notification centre.
"""

from .auth import AuthProvider, CredentialStore, LocalAuthProvider, RestAuthProvider
from .exceptions import (
    AuthError,
    NotFoundError,
    PromptLibraryError,
    TransportError,
    ValidationError,
)
from .export import export_filename, export_library, export_prompt
from .factory import build_prompt_library
from .filtering import FilterState, SortOption, apply_filters, derive_visible_prompts
from .gateway import (
    CollectionDraft,
    LocalPromptStore,
    PromptDraft,
    PromptQuery,
    PromptStore,
    RestPromptStore,
    SqlitePromptStore,
)
from .library import MutationHandle, MutationResult, MutationStatus, PromptLibrary
from .notifications import (
    Notification,
    NotificationCenter,
    NotificationLevel,
    NotificationStatus,
)
from .placeholders import extract_placeholders, fill_placeholders, missing_placeholders
from .state import LibraryState
from .versioning import VersionDiff, diff_versions, get_version, list_versions, record_version

__all__ = [
    "AuthError",
    "AuthProvider",
    "CollectionDraft",
    "CredentialStore",
    "FilterState",
    "LibraryState",
    "LocalAuthProvider",
    "LocalPromptStore",
    "MutationHandle",
    "MutationResult",
    "MutationStatus",
    "NotFoundError",
    "Notification",
    "NotificationCenter",
    "NotificationLevel",
    "NotificationStatus",
    "PromptDraft",
    "PromptLibrary",
    "PromptLibraryError",
    "PromptQuery",
    "PromptStore",
    "RestAuthProvider",
    "RestPromptStore",
    "SortOption",
    "SqlitePromptStore",
    "TransportError",
    "ValidationError",
    "VersionDiff",
    "apply_filters",
    "build_prompt_library",
    "derive_visible_prompts",
    "diff_versions",
    "export_filename",
    "export_library",
    "export_prompt",
    "extract_placeholders",
    "fill_placeholders",
    "get_version",
    "list_versions",
    "missing_placeholders",
    "record_version",
]
