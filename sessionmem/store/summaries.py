from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from .. import db
from .types import SessionSummary, StoredSummary, UserPrompt
from .utils import now, row_to_prompt, row_to_summary

if TYPE_CHECKING:
    from ._store import MemoryStore

CHECKPOINTS = ("session_end", "pre_compact", "plan_progress")

# Higher rank wins when several summaries disagree about one plan item.
_PROGRESS_RANK = {"pending": 0, "in_progress": 1, "complete": 2}


def add_summary(
    store: MemoryStore,
    session_id: str,
    summary: SessionSummary,
    *,
    checkpoint: str = "session_end",
) -> int:
    if checkpoint not in CHECKPOINTS:
        raise ValueError(f"Invalid summary checkpoint '{checkpoint}'")
    created_at, created_epoch = now()
    cur = store.conn.execute(
        """
        INSERT INTO session_summaries(
            session_id, checkpoint, request, investigated, decisions, completed,
            failed_attempts, next_steps, files_created, files_modified,
            verification_results, plan_progress, created_at, created_at_epoch
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            session_id,
            checkpoint,
            summary.request,
            summary.investigated,
            summary.decisions,
            summary.completed,
            summary.failed_attempts,
            summary.next_steps,
            db.to_json(summary.files_created),
            db.to_json(summary.files_modified),
            db.to_json(summary.verification_results),
            db.to_json(summary.plan_progress),
            created_at,
            created_epoch,
        ),
    )
    store.conn.commit()
    lastrowid = cur.lastrowid
    if lastrowid is None:
        raise RuntimeError("Failed to insert summary")
    return int(lastrowid)


def latest_summary(store: MemoryStore, session_id: str) -> StoredSummary | None:
    row = store.conn.execute(
        """
        SELECT * FROM session_summaries WHERE session_id = ?
        ORDER BY created_at_epoch DESC, id DESC LIMIT 1
        """,
        (session_id,),
    ).fetchone()
    return row_to_summary(row) if row else None


def merge_plan_progress(
    store: MemoryStore, session_id: str, progress: Mapping[str, str]
) -> int:
    """Merge plan-item statuses into the session's latest summary.

    Keys not mentioned in ``progress`` are kept. When the session has no
    summary yet a ``plan_progress`` checkpoint is created to hold them.
    """
    latest = latest_summary(store, session_id)
    if latest is None:
        return add_summary(
            store,
            session_id,
            SessionSummary(plan_progress=dict(progress)),
            checkpoint="plan_progress",
        )
    merged = dict(latest.plan_progress)
    merged.update(progress)
    store.conn.execute(
        "UPDATE session_summaries SET plan_progress = ? WHERE id = ?",
        (db.to_json(merged), latest.id),
    )
    store.conn.commit()
    return latest.id


def recent_summaries(
    store: MemoryStore, *, limit: int = 10, exclude_session_id: str | None = None
) -> list[StoredSummary]:
    if exclude_session_id:
        rows = store.conn.execute(
            """
            SELECT * FROM session_summaries WHERE session_id != ?
            ORDER BY created_at_epoch DESC, id DESC LIMIT ?
            """,
            (exclude_session_id, limit),
        ).fetchall()
    else:
        rows = store.conn.execute(
            "SELECT * FROM session_summaries ORDER BY created_at_epoch DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
    return [row_to_summary(row) for row in rows]


def cross_task_progress(store: MemoryStore, task_id: str) -> dict[str, str]:
    """Plan progress merged over every session linked to ``task_id``."""
    rows = store.conn.execute(
        """
        SELECT ss.plan_progress FROM session_summaries ss
        JOIN sessions s ON s.session_id = ss.session_id
        WHERE s.task_id = ?
        ORDER BY ss.created_at_epoch ASC, ss.id ASC
        """,
        (task_id,),
    ).fetchall()
    merged: dict[str, str] = {}
    for row in rows:
        for item, status in db.from_json(row["plan_progress"]).items():
            status = str(status)
            current = merged.get(item)
            if current is None or _PROGRESS_RANK.get(status, -1) > _PROGRESS_RANK.get(current, -1):
                merged[item] = status
    return merged


def add_user_prompt(store: MemoryStore, session_id: str, prompt_text: str) -> int:
    """Store a prompt, numbering it after the session's existing prompts."""
    created_at, created_epoch = now()
    row = store.conn.execute(
        "SELECT COUNT(*) AS total FROM user_prompts WHERE session_id = ?",
        (session_id,),
    ).fetchone()
    prompt_number = int(row["total"]) + 1 if row else 1
    store.conn.execute(
        """
        INSERT INTO user_prompts(session_id, prompt_text, prompt_number, created_at, created_at_epoch)
        VALUES (?, ?, ?, ?, ?)
        """,
        (session_id, prompt_text, prompt_number, created_at, created_epoch),
    )
    store.conn.commit()
    return prompt_number


def session_prompts(store: MemoryStore, session_id: str) -> list[UserPrompt]:
    rows = store.conn.execute(
        "SELECT * FROM user_prompts WHERE session_id = ? ORDER BY prompt_number ASC",
        (session_id,),
    ).fetchall()
    return [row_to_prompt(row) for row in rows]
