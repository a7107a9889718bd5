from __future__ import annotations

import datetime as dt
from collections.abc import Sequence
from typing import TYPE_CHECKING

from .. import db
from ..observation_kinds import assign_importance, clamp_importance, validate_observation_kind
from . import search as store_search
from .types import Observation
from .utils import now, row_to_observation

if TYPE_CHECKING:
    from ._store import MemoryStore

FAILED_ATTEMPT = "failed_attempt"


def insert_observation(
    store: MemoryStore,
    session_id: str,
    *,
    kind: str,
    title: str,
    detail: str | None = None,
    files_involved: Sequence[str] | None = None,
    plan_item: str | None = None,
    cr_rule: str | None = None,
    vr_type: str | None = None,
    evidence: str | None = None,
    outcome: str | None = None,
    importance: int | None = None,
    original_tokens: int = 0,
) -> int:
    kind = validate_observation_kind(kind)
    if importance is None:
        if outcome is None:
            outcome = "PASS" if evidence and "PASS" in evidence else "FAIL"
        importance = assign_importance(kind, outcome)
    created_at, created_epoch = now()
    cur = store.conn.execute(
        """
        INSERT INTO observations(
            session_id, type, title, detail, files_involved, plan_item, cr_rule,
            vr_type, evidence, importance, original_tokens, created_at, created_at_epoch
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            session_id,
            kind,
            title,
            detail,
            db.to_json(list(files_involved or [])),
            plan_item,
            cr_rule,
            vr_type,
            evidence,
            clamp_importance(importance),
            original_tokens,
            created_at,
            created_epoch,
        ),
    )
    store.conn.commit()
    lastrowid = cur.lastrowid
    if lastrowid is None:
        raise RuntimeError("Failed to insert observation")
    return int(lastrowid)


def get_observation(store: MemoryStore, observation_id: int) -> Observation | None:
    row = store.conn.execute(
        "SELECT * FROM observations WHERE id = ?", (observation_id,)
    ).fetchone()
    return row_to_observation(row) if row else None


def bump_recurrence(store: MemoryStore, observation_id: int, detail: str | None = None) -> None:
    store.conn.execute(
        """
        UPDATE observations
        SET recurrence_count = recurrence_count + 1, detail = COALESCE(?, detail)
        WHERE id = ?
        """,
        (detail, observation_id),
    )
    store.conn.commit()


def find_failed_attempt(store: MemoryStore, title: str) -> Observation | None:
    """Most recent failed attempt with exactly this title, across every session."""
    row = store.conn.execute(
        """
        SELECT * FROM observations
        WHERE type = ? AND title = ?
        ORDER BY created_at_epoch DESC, id DESC
        LIMIT 1
        """,
        (FAILED_ATTEMPT, title),
    ).fetchone()
    return row_to_observation(row) if row else None


def record_failed_attempt(
    store: MemoryStore,
    session_id: str,
    title: str,
    detail: str | None = None,
    *,
    files_involved: Sequence[str] | None = None,
    plan_item: str | None = None,
    importance: int | None = None,
) -> int:
    """Insert a failed attempt or merge it into an earlier one with the same title.

    A merge bumps ``recurrence_count`` and replaces the detail only when a new
    one is supplied; the original timestamp and importance stay. New rows are
    always stored with importance 5, whatever the caller passed.
    """
    existing = find_failed_attempt(store, title)
    if existing is not None:
        bump_recurrence(store, existing.id, detail)
        return existing.id
    return insert_observation(
        store,
        session_id,
        kind=FAILED_ATTEMPT,
        title=title,
        detail=detail,
        files_involved=files_involved,
        plan_item=plan_item,
        importance=5,
    )


def session_observations(
    store: MemoryStore, session_id: str, *, limit: int | None = None
) -> list[Observation]:
    """Observations of one session in chronological order (the last ``limit`` if set)."""
    if limit is None:
        rows = store.conn.execute(
            """
            SELECT * FROM observations WHERE session_id = ?
            ORDER BY created_at_epoch ASC, id ASC
            """,
            (session_id,),
        ).fetchall()
        return [row_to_observation(row) for row in rows]
    rows = store.conn.execute(
        """
        SELECT * FROM observations WHERE session_id = ?
        ORDER BY created_at_epoch DESC, id DESC
        LIMIT ?
        """,
        (session_id, limit),
    ).fetchall()
    return [row_to_observation(row) for row in reversed(rows)]


def recent_observations(
    store: MemoryStore, *, limit: int = 20, session_id: str | None = None
) -> list[Observation]:
    if session_id:
        rows = store.conn.execute(
            """
            SELECT * FROM observations WHERE session_id = ?
            ORDER BY created_at_epoch DESC, id DESC LIMIT ?
            """,
            (session_id, limit),
        ).fetchall()
    else:
        rows = store.conn.execute(
            "SELECT * FROM observations ORDER BY created_at_epoch DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
    return [row_to_observation(row) for row in rows]


def failed_attempts(
    store: MemoryStore, query: str | None = None, *, limit: int = 20
) -> list[Observation]:
    if query and query.strip():
        return store_search.match_observations(
            store,
            query,
            kind=FAILED_ATTEMPT,
            limit=limit,
            order_by="o.recurrence_count DESC, o.created_at_epoch DESC",
        )
    rows = store.conn.execute(
        """
        SELECT * FROM observations WHERE type = ?
        ORDER BY recurrence_count DESC, created_at_epoch DESC, id DESC
        LIMIT ?
        """,
        (FAILED_ATTEMPT, limit),
    ).fetchall()
    return [row_to_observation(row) for row in rows]


def decisions_about(store: MemoryStore, query: str, *, limit: int = 20) -> list[Observation]:
    return store_search.match_observations(store, query, kind="decision", limit=limit)


def prune_observations(store: MemoryStore, retention_days: int) -> int:
    """Delete observations older than the retention window. Returns rows removed."""
    cutoff = dt.datetime.now(dt.UTC) - dt.timedelta(days=retention_days)
    cutoff_epoch = int(cutoff.timestamp() * 1000)
    cur = store.conn.execute(
        "DELETE FROM observations WHERE created_at_epoch < ?", (cutoff_epoch,)
    )
    store.conn.commit()
    return int(cur.rowcount or 0)
