from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path

from .. import db
from ..utils import estimate_tokens
from . import observations as store_observations
from . import search as store_search
from . import sessions as store_sessions
from . import summaries as store_summaries
from . import sync_queue as store_sync_queue
from .types import (
    Observation,
    PendingSyncItem,
    SessionRecord,
    SessionSummary,
    StoredSummary,
    TimelineEntry,
    UserPrompt,
)


class MemoryStore:
    def __init__(
        self,
        db_path: Path | str = db.DEFAULT_DB_PATH,
        *,
        check_same_thread: bool = True,
    ):
        self.db_path = Path(db_path).expanduser()
        self.conn = db.connect(self.db_path, check_same_thread=check_same_thread)
        self.fts_enabled = db.initialize_schema(self.conn)

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> MemoryStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @staticmethod
    def estimate_tokens(text: str) -> int:
        return estimate_tokens(text)

    # Sessions

    def upsert_session(
        self,
        session_id: str,
        *,
        project: str | None = None,
        git_branch: str | None = None,
    ) -> bool:
        return store_sessions.upsert_session(
            self, session_id, project=project, git_branch=git_branch
        )

    def end_session(self, session_id: str, status: str = "completed") -> None:
        store_sessions.end_session(self, session_id, status)

    def set_plan_file(self, session_id: str, plan_file: str) -> str:
        return store_sessions.set_plan_file(self, session_id, plan_file)

    def link_session_to_task(self, session_id: str, task_id: str) -> None:
        store_sessions.link_session_to_task(self, session_id, task_id)

    def get_session(self, session_id: str) -> SessionRecord | None:
        return store_sessions.get_session(self, session_id)

    def sessions_by_task(self, task_id: str) -> list[SessionRecord]:
        return store_sessions.sessions_by_task(self, task_id)

    def count_sessions(self) -> int:
        return store_sessions.count_sessions(self)

    # Observations

    def insert_observation(
        self,
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
        return store_observations.insert_observation(
            self,
            session_id,
            kind=kind,
            title=title,
            detail=detail,
            files_involved=files_involved,
            plan_item=plan_item,
            cr_rule=cr_rule,
            vr_type=vr_type,
            evidence=evidence,
            outcome=outcome,
            importance=importance,
            original_tokens=original_tokens,
        )

    def get_observation(self, observation_id: int) -> Observation | None:
        return store_observations.get_observation(self, observation_id)

    def bump_recurrence(self, observation_id: int, detail: str | None = None) -> None:
        store_observations.bump_recurrence(self, observation_id, detail)

    def find_failed_attempt(self, title: str) -> Observation | None:
        return store_observations.find_failed_attempt(self, title)

    def record_failed_attempt(
        self,
        session_id: str,
        title: str,
        detail: str | None = None,
        *,
        files_involved: Sequence[str] | None = None,
        plan_item: str | None = None,
        importance: int | None = None,
    ) -> int:
        return store_observations.record_failed_attempt(
            self,
            session_id,
            title,
            detail,
            files_involved=files_involved,
            plan_item=plan_item,
            importance=importance,
        )

    def session_observations(
        self, session_id: str, *, limit: int | None = None
    ) -> list[Observation]:
        return store_observations.session_observations(self, session_id, limit=limit)

    def recent_observations(
        self, *, limit: int = 20, session_id: str | None = None
    ) -> list[Observation]:
        return store_observations.recent_observations(self, limit=limit, session_id=session_id)

    def failed_attempts(self, query: str | None = None, *, limit: int = 20) -> list[Observation]:
        return store_observations.failed_attempts(self, query, limit=limit)

    def decisions_about(self, query: str, *, limit: int = 20) -> list[Observation]:
        return store_observations.decisions_about(self, query, limit=limit)

    def prune_observations(self, retention_days: int) -> int:
        return store_observations.prune_observations(self, retention_days)

    # Prompts and summaries

    def add_user_prompt(self, session_id: str, prompt_text: str) -> int:
        return store_summaries.add_user_prompt(self, session_id, prompt_text)

    def session_prompts(self, session_id: str) -> list[UserPrompt]:
        return store_summaries.session_prompts(self, session_id)

    def add_summary(
        self, session_id: str, summary: SessionSummary, *, checkpoint: str = "session_end"
    ) -> int:
        return store_summaries.add_summary(self, session_id, summary, checkpoint=checkpoint)

    def latest_summary(self, session_id: str) -> StoredSummary | None:
        return store_summaries.latest_summary(self, session_id)

    def merge_plan_progress(self, session_id: str, progress: Mapping[str, str]) -> int:
        return store_summaries.merge_plan_progress(self, session_id, progress)

    def recent_summaries(
        self, *, limit: int = 10, exclude_session_id: str | None = None
    ) -> list[StoredSummary]:
        return store_summaries.recent_summaries(
            self, limit=limit, exclude_session_id=exclude_session_id
        )

    def cross_task_progress(self, task_id: str) -> dict[str, str]:
        return store_summaries.cross_task_progress(self, task_id)

    # Search

    def session_timeline(self, session_id: str) -> list[TimelineEntry]:
        return store_search.session_timeline(self, session_id)

    def search_observations(
        self,
        query: str,
        *,
        kind: str | None = None,
        session_id: str | None = None,
        limit: int = 20,
    ) -> list[Observation]:
        return store_search.search_observations(
            self, query, kind=kind, session_id=session_id, limit=limit
        )

    def search_prompts(self, query: str, *, limit: int = 20) -> list[UserPrompt]:
        return store_search.search_prompts(self, query, limit=limit)

    # Sync outbox

    def enqueue_sync(self, payload: str) -> int:
        return store_sync_queue.enqueue_sync(self, payload)

    def evict_poison_sync(self, max_retries: int = store_sync_queue.MAX_SYNC_RETRIES) -> int:
        return store_sync_queue.evict_poison_sync(self, max_retries)

    def pending_sync(self, limit: int = store_sync_queue.SYNC_BATCH_SIZE) -> list[PendingSyncItem]:
        return store_sync_queue.pending_sync(self, limit)

    def count_pending_sync(self) -> int:
        return store_sync_queue.count_pending_sync(self)

    def ack_sync(self, item_id: int) -> None:
        store_sync_queue.ack_sync(self, item_id)

    def fail_sync(self, item_id: int, error: str) -> None:
        store_sync_queue.fail_sync(self, item_id, error)
