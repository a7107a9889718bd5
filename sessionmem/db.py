from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

DEFAULT_DB_PATH = Path.home() / ".sessionmem" / "memory.sqlite"

logger = logging.getLogger(__name__)


def connect(db_path: Path | str, check_same_thread: bool = True) -> sqlite3.Connection:
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=check_same_thread, timeout=5.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.OperationalError:
        conn.execute("PRAGMA journal_mode = DELETE")
    conn.execute("PRAGMA synchronous = NORMAL")
    return conn


def initialize_schema(conn: sqlite3.Connection) -> bool:
    """Create tables, indexes and FTS mirrors. Returns whether FTS5 is usable."""

    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT UNIQUE NOT NULL,
            project TEXT NOT NULL DEFAULT 'unknown',
            git_branch TEXT,
            started_at TEXT NOT NULL,
            started_at_epoch INTEGER NOT NULL,
            ended_at TEXT,
            ended_at_epoch INTEGER,
            status TEXT NOT NULL DEFAULT 'active'
                CHECK(status IN ('active', 'completed', 'abandoned')),
            plan_file TEXT,
            task_id TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_sessions_started ON sessions(started_at_epoch DESC);
        CREATE INDEX IF NOT EXISTS idx_sessions_task_id ON sessions(task_id);

        CREATE TABLE IF NOT EXISTS observations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            detail TEXT,
            files_involved TEXT NOT NULL DEFAULT '[]',
            plan_item TEXT,
            cr_rule TEXT,
            vr_type TEXT,
            evidence TEXT,
            importance INTEGER NOT NULL DEFAULT 3 CHECK(importance BETWEEN 1 AND 5),
            recurrence_count INTEGER NOT NULL DEFAULT 1,
            original_tokens INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            created_at_epoch INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_observations_session ON observations(session_id);
        CREATE INDEX IF NOT EXISTS idx_observations_type_title ON observations(type, title);
        CREATE INDEX IF NOT EXISTS idx_observations_created ON observations(created_at_epoch DESC);
        CREATE INDEX IF NOT EXISTS idx_observations_plan_item ON observations(plan_item);
        CREATE INDEX IF NOT EXISTS idx_observations_importance ON observations(importance DESC);

        CREATE TABLE IF NOT EXISTS session_summaries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT NOT NULL,
            checkpoint TEXT NOT NULL DEFAULT 'session_end',
            request TEXT,
            investigated TEXT,
            decisions TEXT,
            completed TEXT,
            failed_attempts TEXT,
            next_steps TEXT,
            files_created TEXT NOT NULL DEFAULT '[]',
            files_modified TEXT NOT NULL DEFAULT '[]',
            verification_results TEXT NOT NULL DEFAULT '{}',
            plan_progress TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL,
            created_at_epoch INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_summaries_session ON session_summaries(session_id);
        CREATE INDEX IF NOT EXISTS idx_summaries_created ON session_summaries(created_at_epoch DESC);

        CREATE TABLE IF NOT EXISTS user_prompts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT NOT NULL,
            prompt_text TEXT NOT NULL,
            prompt_number INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            created_at_epoch INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_user_prompts_session ON user_prompts(session_id, prompt_number);

        CREATE TABLE IF NOT EXISTS pending_sync (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            payload TEXT NOT NULL,
            created_at TEXT NOT NULL,
            retry_count INTEGER NOT NULL DEFAULT 0,
            last_error TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_pending_sync_created ON pending_sync(created_at ASC, id ASC);
        """
    )
    _ensure_column(conn, "session_summaries", "checkpoint", "TEXT NOT NULL DEFAULT 'session_end'")
    fts_enabled = _initialize_fts(conn)
    conn.commit()
    return fts_enabled


def _initialize_fts(conn: sqlite3.Connection) -> bool:
    try:
        conn.execute(
            """
            CREATE VIRTUAL TABLE IF NOT EXISTS observations_fts USING fts5(
                title, detail, evidence,
                content='observations',
                content_rowid='id'
            )
            """
        )
        conn.execute(
            """
            CREATE VIRTUAL TABLE IF NOT EXISTS user_prompts_fts USING fts5(
                prompt_text,
                content='user_prompts',
                content_rowid='id'
            )
            """
        )
    except sqlite3.OperationalError as exc:
        logger.warning("fts5 unavailable, search falls back to substring scan", exc_info=exc)
        return False

    conn.executescript(
        """
        CREATE TRIGGER IF NOT EXISTS observations_ai AFTER INSERT ON observations BEGIN
            INSERT INTO observations_fts(rowid, title, detail, evidence)
            VALUES (new.id, new.title, new.detail, new.evidence);
        END;

        CREATE TRIGGER IF NOT EXISTS observations_ad AFTER DELETE ON observations BEGIN
            INSERT INTO observations_fts(observations_fts, rowid, title, detail, evidence)
            VALUES ('delete', old.id, old.title, old.detail, old.evidence);
        END;

        CREATE TRIGGER IF NOT EXISTS observations_au AFTER UPDATE ON observations BEGIN
            INSERT INTO observations_fts(observations_fts, rowid, title, detail, evidence)
            VALUES ('delete', old.id, old.title, old.detail, old.evidence);
            INSERT INTO observations_fts(rowid, title, detail, evidence)
            VALUES (new.id, new.title, new.detail, new.evidence);
        END;

        CREATE TRIGGER IF NOT EXISTS user_prompts_ai AFTER INSERT ON user_prompts BEGIN
            INSERT INTO user_prompts_fts(rowid, prompt_text) VALUES (new.id, new.prompt_text);
        END;

        CREATE TRIGGER IF NOT EXISTS user_prompts_ad AFTER DELETE ON user_prompts BEGIN
            INSERT INTO user_prompts_fts(user_prompts_fts, rowid, prompt_text)
            VALUES ('delete', old.id, old.prompt_text);
        END;

        CREATE TRIGGER IF NOT EXISTS user_prompts_au AFTER UPDATE ON user_prompts BEGIN
            INSERT INTO user_prompts_fts(user_prompts_fts, rowid, prompt_text)
            VALUES ('delete', old.id, old.prompt_text);
            INSERT INTO user_prompts_fts(rowid, prompt_text) VALUES (new.id, new.prompt_text);
        END;
        """
    )
    return True


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, column_type: str) -> None:
    existing = {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
    if column in existing:
        return
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")


def to_json(data: Any) -> str:
    if data is None:
        payload: Any = {}
    else:
        payload = data
    return json.dumps(payload, ensure_ascii=False)


def from_json(text: str | None) -> dict[str, Any]:
    if not text:
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def from_json_list(text: str | None) -> list[str]:
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return []
    if not isinstance(data, list):
        return []
    return [str(item) for item in data if isinstance(item, str) and item]
