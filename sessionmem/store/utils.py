from __future__ import annotations

import datetime as dt
import sqlite3
from typing import Any

from .. import db
from .types import Observation, PendingSyncItem, SessionRecord, StoredSummary, UserPrompt


def now() -> tuple[str, int]:
    """Return the current UTC instant as (iso text, epoch millis)."""
    moment = dt.datetime.now(dt.UTC)
    return moment.isoformat(), int(moment.timestamp() * 1000)


def parse_iso8601(value: str) -> dt.datetime | None:
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed.astimezone(dt.UTC)


def short_date(value: str) -> str:
    parsed = parse_iso8601(value)
    return parsed.date().isoformat() if parsed else value[:10]


def row_to_session(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        id=int(row["id"]),
        session_id=row["session_id"],
        project=row["project"],
        git_branch=row["git_branch"],
        started_at=row["started_at"],
        ended_at=row["ended_at"],
        status=row["status"],
        plan_file=row["plan_file"],
        task_id=row["task_id"],
    )


def row_to_observation(row: sqlite3.Row) -> Observation:
    return Observation(
        id=int(row["id"]),
        session_id=row["session_id"],
        type=row["type"],
        title=row["title"],
        detail=row["detail"],
        files_involved=db.from_json_list(row["files_involved"]),
        plan_item=row["plan_item"],
        cr_rule=row["cr_rule"],
        vr_type=row["vr_type"],
        evidence=row["evidence"],
        importance=int(row["importance"]),
        recurrence_count=int(row["recurrence_count"]),
        original_tokens=int(row["original_tokens"] or 0),
        created_at=row["created_at"],
        created_at_epoch=int(row["created_at_epoch"]),
    )


def _str_map(value: dict[str, Any]) -> dict[str, str]:
    return {str(k): str(v) for k, v in value.items()}


def row_to_summary(row: sqlite3.Row) -> StoredSummary:
    return StoredSummary(
        id=int(row["id"]),
        session_id=row["session_id"],
        checkpoint=row["checkpoint"],
        request=row["request"],
        investigated=row["investigated"],
        decisions=row["decisions"],
        completed=row["completed"],
        failed_attempts=row["failed_attempts"],
        next_steps=row["next_steps"],
        files_created=db.from_json_list(row["files_created"]),
        files_modified=db.from_json_list(row["files_modified"]),
        verification_results=_str_map(db.from_json(row["verification_results"])),
        plan_progress=_str_map(db.from_json(row["plan_progress"])),
        created_at=row["created_at"],
        created_at_epoch=int(row["created_at_epoch"]),
    )


def row_to_prompt(row: sqlite3.Row) -> UserPrompt:
    return UserPrompt(
        id=int(row["id"]),
        session_id=row["session_id"],
        prompt_text=row["prompt_text"],
        prompt_number=int(row["prompt_number"]),
        created_at=row["created_at"],
    )


def row_to_sync_item(row: sqlite3.Row) -> PendingSyncItem:
    return PendingSyncItem(
        id=int(row["id"]),
        payload=row["payload"],
        created_at=row["created_at"],
        retry_count=int(row["retry_count"]),
        last_error=row["last_error"],
    )
