"""Backend gateways implementing the PromptStore contract.

Updates:
  v0.2.0 - 2026-09-24 - Export SQLite and REST stores.
  v0.1.0 - 2026-09-12 - Export PromptStore protocol and local store.
"""

from .base import CollectionDraft, PromptDraft, PromptQuery, PromptStore, UserResolver
from .local import LocalPromptStore
from .rest import RestPromptStore
from .sqlite import SqlitePromptStore

__all__ = [
    "CollectionDraft",
    "LocalPromptStore",
    "PromptDraft",
    "PromptQuery",
    "PromptStore",
    "RestPromptStore",
    "SqlitePromptStore",
    "UserResolver",
]
