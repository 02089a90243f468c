"""JSON export helpers for single prompts and whole libraries.

Updates: v0.1.0 - 2026-09-17 - Add prompt and library JSON export.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from models.common import slugify, utc_now

from .exceptions import TransportError

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from models.prompt_model import Prompt

logger = logging.getLogger("prompt_library.export")


def export_prompt(prompt: Prompt) -> str:
    """Return the prompt record as indented JSON text."""
    return json.dumps(prompt.to_record(), ensure_ascii=False, indent=2)


def export_filename(prompt: Prompt) -> str:
    """Return a download filename derived from the prompt title."""
    return f"{slugify(prompt.title) or 'prompt'}.json"


def export_library(prompts: Iterable[Prompt], output_path: Path) -> Path:
    """Write *prompts* to *output_path* with generation metadata and return the path."""
    records = [prompt.to_record() for prompt in prompts]
    payload = {
        "generated_at": utc_now().isoformat(),
        "count": len(records),
        "prompts": records,
    }
    resolved_path = Path(output_path).expanduser()
    try:
        resolved_path.parent.mkdir(parents=True, exist_ok=True)
        resolved_path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
    except OSError as exc:
        raise TransportError(f"Unable to write export to {resolved_path}") from exc
    logger.info("Exported %s prompts to %s", len(records), resolved_path)
    return resolved_path


__all__ = ["export_filename", "export_library", "export_prompt"]
