"""Display-time placeholder substitution for prompt content.

Placeholders are ``{name}`` or ``{{name}}`` tokens. Values are substituted
when rendering only; the stored prompt content is never rewritten.

Updates: v0.1.0 - 2026-09-17 - Add placeholder extraction and substitution helpers.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

_PLACEHOLDER_PATTERN = re.compile(
    r"\{\{\s*(?P<double>[A-Za-z_][\w.-]*)\s*\}\}|\{(?P<single>[A-Za-z_][\w.-]*)\}"
)


def _name(match: re.Match[str]) -> str:
    return match.group("double") or match.group("single")


def extract_placeholders(content: str) -> list[str]:
    """Return unique placeholder names in order of first appearance."""
    names: list[str] = []
    for match in _PLACEHOLDER_PATTERN.finditer(content or ""):
        name = _name(match)
        if name not in names:
            names.append(name)
    return names


def fill_placeholders(content: str, values: Mapping[str, Any]) -> str:
    """Return *content* with known placeholders replaced by their values.

    Tokens without a value in *values* are left exactly as written.
    """

    def _substitute(match: re.Match[str]) -> str:
        name = _name(match)
        if name not in values or values[name] is None:
            return match.group(0)
        return str(values[name])

    return _PLACEHOLDER_PATTERN.sub(_substitute, content or "")


def missing_placeholders(content: str, values: Mapping[str, Any]) -> list[str]:
    """Return placeholder names in *content* that have no value in *values*."""
    return [
        name
        for name in extract_placeholders(content)
        if name not in values or values[name] is None
    ]


__all__ = ["extract_placeholders", "fill_placeholders", "missing_placeholders"]
