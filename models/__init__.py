"""Data models for Prompt Library.

Updates: v0.2.0 - 2026-09-10 - Export Tag, Collection, and User dataclasses.
Updates: v0.1.0 - 2026-09-02 - Export Prompt dataclass.
"""

from .collection_model import Collection, new_collection
from .common import has_text, new_id, utc_now
from .prompt_model import Prompt, VersionEntry, new_prompt
from .tag_model import Tag, new_tag, tag_key
from .user_model import User

__all__ = [
    "Collection",
    "Prompt",
    "Tag",
    "User",
    "VersionEntry",
    "has_text",
    "new_collection",
    "new_id",
    "new_prompt",
    "new_tag",
    "tag_key",
    "utc_now",
]
