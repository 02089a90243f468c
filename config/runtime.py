"""Runtime boot helpers for Prompt Library.

Updates:
  v0.2.0 - 2026-10-19 - Add bootstrap() applying the configured logging file.
  v0.1.0 - 2026-09-30 - Load logging configuration with a basicConfig fallback.
"""

from __future__ import annotations

import configparser
import logging
import logging.config
from pathlib import Path
from typing import Any

from .settings import PromptLibrarySettings, load_settings

DEFAULT_LOGGING_CONF = Path(__file__).with_name("logging.conf")


def setup_logging(logging_conf_path: Path | None = None) -> bool:
    """Configure logging using *logging_conf_path* when available.

    Returns ``True`` when the file configuration was applied and ``False``
    when the ``basicConfig`` fallback was used instead.
    """
    path = logging_conf_path or DEFAULT_LOGGING_CONF
    if path.exists():
        try:
            logging.config.fileConfig(path, disable_existing_loggers=False)
            return True
        except (configparser.Error, KeyError, ValueError, OSError, RuntimeError) as exc:
            logging.getLogger("prompt_library.runtime").warning(
                "Ignoring invalid logging configuration %s: %s", path, exc
            )
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return False


def bootstrap(**overrides: Any) -> PromptLibrarySettings:
    """Load settings and configure logging from ``settings.logging_conf_path``.

    Raises:
      SettingsError: when the configuration is invalid.
    """
    settings = load_settings(**overrides)
    setup_logging(settings.logging_conf_path)
    logging.getLogger("prompt_library.runtime").debug(
        "Bootstrapped Prompt Library", extra={"backend": settings.backend}
    )
    return settings
