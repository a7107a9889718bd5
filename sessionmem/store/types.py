from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypedDict


@dataclass
class SessionRecord:
    id: int
    session_id: str
    project: str
    git_branch: str | None
    started_at: str
    ended_at: str | None
    status: str
    plan_file: str | None
    task_id: str | None


@dataclass
class Observation:
    id: int
    session_id: str
    type: str
    title: str
    detail: str | None
    files_involved: list[str]
    plan_item: str | None
    cr_rule: str | None
    vr_type: str | None
    evidence: str | None
    importance: int
    recurrence_count: int
    original_tokens: int
    created_at: str
    created_at_epoch: int


@dataclass
class SessionSummary:
    """Derived digest of one session at one checkpoint."""

    request: str | None = None
    investigated: str | None = None
    decisions: str | None = None
    completed: str | None = None
    failed_attempts: str | None = None
    next_steps: str | None = None
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    verification_results: dict[str, str] = field(default_factory=dict)
    plan_progress: dict[str, str] = field(default_factory=dict)


@dataclass
class StoredSummary(SessionSummary):
    id: int = 0
    session_id: str = ""
    checkpoint: str = "session_end"
    created_at: str = ""
    created_at_epoch: int = 0


@dataclass
class UserPrompt:
    id: int
    session_id: str
    prompt_text: str
    prompt_number: int
    created_at: str


@dataclass
class PendingSyncItem:
    id: int
    payload: str
    created_at: str
    retry_count: int
    last_error: str | None


class TimelineEntry(TypedDict):
    kind: str
    created_at: str
    created_at_epoch: int
    text: str
    metadata: dict[str, Any]
