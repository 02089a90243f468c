"""Configuration helpers for Prompt Library.

Updates: v0.2.1 - 2026-10-19 - Export bootstrap helper.
Updates: v0.2.0 - 2026-09-30 - Export logging bootstrap alongside the settings loader.
Updates: v0.1.0 - 2026-09-08 - Expose settings loader and configuration error types.
"""

from .runtime import bootstrap, setup_logging
from .settings import (
    DEFAULT_API_BASE_URL,
    DEFAULT_BACKEND,
    DEFAULT_SORT,
    PromptLibrarySettings,
    SettingsError,
    load_settings,
)

__all__ = [
    "DEFAULT_API_BASE_URL",
    "DEFAULT_BACKEND",
    "DEFAULT_SORT",
    "PromptLibrarySettings",
    "SettingsError",
    "bootstrap",
    "load_settings",
    "setup_logging",
]
