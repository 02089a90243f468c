"""Settings management utilities for Prompt Library configuration.

Updates:
  v0.2.1 - 2026-10-06 - Require an API base URL when the REST backend is selected.
  v0.2.0 - 2026-09-30 - Add SQLite backend path and retry attempts for the REST gateway.
  v0.1.1 - 2026-09-16 - Read .env values through python-dotenv without touching os.environ.
  v0.1.0 - 2026-09-08 - Introduce backend selection and store paths.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal, cast

from dotenv import dotenv_values
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

_DOTENV_FALLBACK_PATH = ".env"

BackendName = Literal["local", "rest", "sqlite"]
SortName = Literal["newest", "oldest", "alphabetical", "updated"]

DEFAULT_BACKEND: BackendName = "local"
DEFAULT_API_BASE_URL = "http://localhost:3000"
DEFAULT_SORT: SortName = "newest"

_ENV_KEYS: dict[str, list[str]] = {
    "backend": ["BACKEND", "backend"],
    "local_store_path": ["LOCAL_STORE_PATH", "STORE_PATH", "local_store_path"],
    "auth_store_path": ["AUTH_STORE_PATH", "auth_store_path"],
    "sqlite_path": ["SQLITE_PATH", "DB_PATH", "sqlite_path", "db_path"],
    "api_base_url": ["API_BASE_URL", "API_URL", "api_base_url"],
    "api_timeout_seconds": ["API_TIMEOUT_SECONDS", "api_timeout_seconds"],
    "api_max_attempts": ["API_MAX_ATTEMPTS", "api_max_attempts"],
    "default_sort": ["DEFAULT_SORT", "default_sort"],
    "logging_conf_path": ["LOGGING_CONF", "logging_conf_path"],
}


def _read_dotenv_values() -> dict[str, str]:
    """Load ``.env`` entries into a mapping without mutating ``os.environ``."""
    env_file_override = os.getenv("PROMPT_LIBRARY_ENV_FILE")
    if env_file_override is not None:
        candidate = env_file_override.strip()
        if not candidate:
            return {}
        path = Path(candidate).expanduser()
    else:
        path = Path(_DOTENV_FALLBACK_PATH).expanduser()
    if not path.is_file():
        return {}
    raw_values = dotenv_values(str(path))
    return {str(key): str(value) for key, value in raw_values.items() if value is not None}


class SettingsError(Exception):
    """Raised when Prompt Library configuration cannot be loaded or validated."""


class PromptLibrarySettings(BaseSettings):
    """Application configuration sourced from environment variables or JSON files."""

    backend: BackendName = Field(default=DEFAULT_BACKEND)
    local_store_path: Path | None = Field(default=Path("data") / "prompt_library.json")
    auth_store_path: Path | None = Field(default=Path("data") / "accounts.json")
    sqlite_path: Path = Field(default=Path("data") / "prompt_library.db")
    api_base_url: str | None = Field(default=DEFAULT_API_BASE_URL)
    api_timeout_seconds: float = Field(default=15.0)
    api_max_attempts: int = Field(default=3)
    default_sort: SortName = Field(default=DEFAULT_SORT)
    logging_conf_path: Path | None = Field(default=None)

    model_config = cast(
        "SettingsConfigDict",
        {
            "env_prefix": "PROMPT_LIBRARY_",
            "case_sensitive": False,
            "extra": "ignore",
        },
    )

    @field_validator("backend", "default_sort", mode="before")
    def _normalise_choice(cls, value: Any) -> Any:
        """Accept choices in any case and surrounding whitespace."""
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("local_store_path", "auth_store_path", "logging_conf_path", mode="before")
    def _normalise_optional_path(cls, value: Any) -> Path | None:
        """Expand user-relative paths; blank values disable the file."""
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            return None
        return Path(text).expanduser()

    @field_validator("sqlite_path", mode="before")
    def _normalise_path(cls, value: Any) -> Path:
        """Expand user-relative paths and coerce values to Path instances."""
        if value is None or not str(value).strip():
            raise ValueError("a filesystem path is required")
        return Path(str(value).strip()).expanduser()

    @field_validator("api_base_url", mode="before")
    def _strip_url(cls, value: str | None) -> str | None:
        """Trim whitespace and trailing slashes; empty strings become ``None``."""
        if value is None:
            return None
        stripped = str(value).strip().rstrip("/")
        return stripped or None

    @field_validator("api_timeout_seconds")
    def _validate_timeout(cls, value: float) -> float:
        """Ensure the HTTP timeout is positive."""
        if value <= 0:
            raise ValueError("api_timeout_seconds must be greater than zero")
        return value

    @field_validator("api_max_attempts")
    def _validate_attempts(cls, value: int) -> int:
        """Ensure at least one request attempt is made."""
        if value < 1:
            raise ValueError("api_max_attempts must be at least 1")
        return value

    @model_validator(mode="after")
    def _validate_backend(self) -> PromptLibrarySettings:
        """The REST backend needs somewhere to send requests."""
        if self.backend == "rest" and not self.api_base_url:
            raise ValueError("api_base_url is required when backend is 'rest'")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
    ]:
        """Define configuration source precedence.

        Order (highest → lowest):
            1. Explicit keyword arguments (e.g. load_settings(backend="rest")).
            2. JSON configuration file.
            3. Environment variables / ``.env`` entries, including aliases.
            4. File secrets.
        """

        def env_with_aliases(_: BaseSettings | None = None) -> dict[str, Any]:
            data: dict[str, Any] = {}
            config_dict = cast("dict[str, Any]", cls.model_config)
            prefix = str(config_dict.get("env_prefix", ""))
            dotenv = _read_dotenv_values()

            def _lookup(candidate: str) -> str | None:
                value = os.getenv(candidate)
                if value is None:
                    value = dotenv.get(candidate)
                if value is None:
                    return None
                return str(value).strip() or None

            for field, keys in _ENV_KEYS.items():
                for key in keys:
                    value = _lookup(f"{prefix}{key}") or _lookup(f"{prefix}{key.upper()}")
                    if value is not None:
                        data[field] = value
                        break
            return data

        return (
            init_settings,
            cls._json_config_settings_source(settings_cls),
            cast("PydanticBaseSettingsSource", env_with_aliases),
            file_secret_settings,
        )

    @classmethod
    def _json_config_settings_source(
        cls,
        _: type[BaseSettings],
    ) -> PydanticBaseSettingsSource:
        """Return settings extracted from an optional JSON config file."""

        def _loader(_: BaseSettings | None = None) -> dict[str, Any]:
            explicit_path = os.getenv("PROMPT_LIBRARY_CONFIG_JSON")
            candidates: list[Path] = []
            if explicit_path:
                candidates.append(Path(explicit_path).expanduser())
            candidates.append(Path("config") / "config.json")

            for path in candidates:
                if not path.exists():
                    if explicit_path and path == candidates[0]:
                        raise SettingsError(f"Configuration file not found: {path}")
                    continue
                try:
                    raw_contents = path.read_text(encoding="utf-8")
                except OSError as exc:  # pragma: no cover - filesystem failure is env-specific
                    raise SettingsError(f"Unable to read configuration file: {path}") from exc
                try:
                    data = json.loads(raw_contents)
                except json.JSONDecodeError as exc:
                    raise SettingsError(f"Invalid JSON in configuration file: {path}") from exc
                if not isinstance(data, dict):
                    raise SettingsError(f"Configuration file {path} must contain a JSON object")
                mapping_data = cast("Mapping[object, Any]", data)
                data_dict = {str(key): value for key, value in mapping_data.items()}
                if "db_path" in data_dict and "sqlite_path" not in data_dict:
                    data_dict["sqlite_path"] = data_dict["db_path"]
                mapped = {key: data_dict[key] for key in _ENV_KEYS if key in data_dict}
                ignored = sorted(set(data_dict) - set(mapped) - {"db_path"})
                if ignored:
                    logger.warning(
                        "Ignoring unknown key(s) %s in configuration file %s",
                        ", ".join(ignored),
                        path,
                    )
                return mapped
            return {}

        return cast("PydanticBaseSettingsSource", _loader)


def load_settings(**overrides: Any) -> PromptLibrarySettings:
    """Return validated settings, raising SettingsError on failure."""
    try:
        return PromptLibrarySettings(**overrides)
    except SettingsError:
        raise
    except ValidationError as exc:
        raise SettingsError("Invalid Prompt Library configuration") from exc


logger = logging.getLogger("prompt_library.settings")
