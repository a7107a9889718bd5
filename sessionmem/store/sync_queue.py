from __future__ import annotations

from typing import TYPE_CHECKING

from .types import PendingSyncItem
from .utils import now, row_to_sync_item

if TYPE_CHECKING:
    from ._store import MemoryStore

MAX_SYNC_RETRIES = 10
SYNC_BATCH_SIZE = 10


def enqueue_sync(store: MemoryStore, payload: str) -> int:
    created_at, _ = now()
    cur = store.conn.execute(
        "INSERT INTO pending_sync(payload, created_at, retry_count) VALUES (?, ?, 0)",
        (payload, created_at),
    )
    store.conn.commit()
    lastrowid = cur.lastrowid
    if lastrowid is None:
        raise RuntimeError("Failed to enqueue sync payload")
    return int(lastrowid)


def evict_poison_sync(store: MemoryStore, max_retries: int = MAX_SYNC_RETRIES) -> int:
    """Drop queue rows that have failed ``max_retries`` times. Returns rows removed."""
    cur = store.conn.execute(
        "DELETE FROM pending_sync WHERE retry_count >= ?", (max_retries,)
    )
    store.conn.commit()
    return int(cur.rowcount or 0)


def pending_sync(store: MemoryStore, limit: int = SYNC_BATCH_SIZE) -> list[PendingSyncItem]:
    rows = store.conn.execute(
        "SELECT * FROM pending_sync ORDER BY created_at ASC, id ASC LIMIT ?",
        (limit,),
    ).fetchall()
    return [row_to_sync_item(row) for row in rows]


def count_pending_sync(store: MemoryStore) -> int:
    row = store.conn.execute("SELECT COUNT(*) AS total FROM pending_sync").fetchone()
    return int(row["total"]) if row else 0


def ack_sync(store: MemoryStore, item_id: int) -> None:
    store.conn.execute("DELETE FROM pending_sync WHERE id = ?", (item_id,))
    store.conn.commit()


def fail_sync(store: MemoryStore, item_id: int, error: str) -> None:
    store.conn.execute(
        "UPDATE pending_sync SET retry_count = retry_count + 1, last_error = ? WHERE id = ?",
        (error, item_id),
    )
    store.conn.commit()
