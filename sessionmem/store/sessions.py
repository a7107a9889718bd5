from __future__ import annotations

from pathlib import PurePath
from typing import TYPE_CHECKING

from .types import SessionRecord
from .utils import now, row_to_session

if TYPE_CHECKING:
    from ._store import MemoryStore

SESSION_STATUSES = ("active", "completed", "abandoned")


def task_id_from_plan(plan_file: str) -> str:
    """Derive a task id from a plan file path: basename without ``.md``."""
    name = PurePath(plan_file).name
    return name[:-3] if name.endswith(".md") else name


def upsert_session(
    store: MemoryStore,
    session_id: str,
    *,
    project: str | None = None,
    git_branch: str | None = None,
) -> bool:
    """Create the session row if missing. Returns True when a row was inserted."""
    started_at, started_epoch = now()
    cur = store.conn.execute(
        """
        INSERT OR IGNORE INTO sessions(session_id, project, git_branch, started_at, started_at_epoch)
        VALUES (?, ?, ?, ?, ?)
        """,
        (session_id, project or "unknown", git_branch, started_at, started_epoch),
    )
    store.conn.commit()
    return cur.rowcount > 0


def end_session(store: MemoryStore, session_id: str, status: str = "completed") -> None:
    if status not in SESSION_STATUSES:
        raise ValueError(f"Invalid session status '{status}'")
    ended_at, ended_epoch = now()
    store.conn.execute(
        "UPDATE sessions SET ended_at = ?, ended_at_epoch = ?, status = ? WHERE session_id = ?",
        (ended_at, ended_epoch, status, session_id),
    )
    store.conn.commit()


def set_plan_file(store: MemoryStore, session_id: str, plan_file: str) -> str:
    """Record the plan file for a session and backfill its task id."""
    task_id = task_id_from_plan(plan_file)
    store.conn.execute(
        "UPDATE sessions SET plan_file = ?, task_id = COALESCE(task_id, ?) WHERE session_id = ?",
        (plan_file, task_id, session_id),
    )
    store.conn.commit()
    return task_id


def link_session_to_task(store: MemoryStore, session_id: str, task_id: str) -> None:
    store.conn.execute(
        "UPDATE sessions SET task_id = ? WHERE session_id = ?",
        (task_id, session_id),
    )
    store.conn.commit()


def get_session(store: MemoryStore, session_id: str) -> SessionRecord | None:
    row = store.conn.execute(
        "SELECT * FROM sessions WHERE session_id = ?",
        (session_id,),
    ).fetchone()
    return row_to_session(row) if row else None


def sessions_by_task(store: MemoryStore, task_id: str) -> list[SessionRecord]:
    rows = store.conn.execute(
        "SELECT * FROM sessions WHERE task_id = ? ORDER BY started_at_epoch DESC, id DESC",
        (task_id,),
    ).fetchall()
    return [row_to_session(row) for row in rows]


def count_sessions(store: MemoryStore) -> int:
    row = store.conn.execute("SELECT COUNT(*) AS total FROM sessions").fetchone()
    return int(row["total"]) if row else 0
