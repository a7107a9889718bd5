from __future__ import annotations

from rich import print

from sessionmem.store import MemoryStore


def init_db_cmd(store: MemoryStore) -> None:
    """Create the SQLite database (no-op if it already exists)."""

    fts = "enabled" if store.fts_enabled else "unavailable (substring search)"
    print(f"Initialized database at {store.db_path} (full-text search {fts})")


def prune_observations_cmd(store: MemoryStore, *, days: int) -> None:
    """Delete observations older than the retention window."""

    removed = store.prune_observations(days)
    print(f"Pruned {removed} observations older than {days} days")
