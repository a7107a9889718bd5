from __future__ import annotations

from ._store import MemoryStore
from .types import (
    Observation,
    PendingSyncItem,
    SessionRecord,
    SessionSummary,
    StoredSummary,
    UserPrompt,
)

__all__ = [
    "MemoryStore",
    "Observation",
    "PendingSyncItem",
    "SessionRecord",
    "SessionSummary",
    "StoredSummary",
    "UserPrompt",
]
