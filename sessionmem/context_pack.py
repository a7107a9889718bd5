from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .store.utils import short_date
from .utils import estimate_tokens, truncate

if TYPE_CHECKING:
    from .store import MemoryStore

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "=== SESSIONMEM: Previous Session Context ===\n\n"
CONTEXT_FOOTER = "=== END SESSIONMEM ===\n"

FIRST_SESSION_BANNER = (
    "=== SESSIONMEM: Active ===\n"
    "Session memory is now active. Observations from this session will be "
    "available to the next one.\n"
    "=== END SESSIONMEM ===\n\n"
)

FAILED_ATTEMPTS_WEIGHT = 10
CURRENT_SESSION_WEIGHT = 9
TASK_PROGRESS_WEIGHT = 8
SUMMARY_WEIGHT = 7
RECENT_OBSERVATIONS_WEIGHT = 5

FAILED_ATTEMPTS_LIMIT = 10
CURRENT_SESSION_LIMIT = 30
RECENT_OBSERVATIONS_LIMIT = 20


@dataclass(frozen=True)
class ContextSection:
    weight: int
    text: str

    @property
    def tokens(self) -> int:
        # Each section is followed by one newline in the rendered block.
        return estimate_tokens(self.text + "\n")


def overhead_tokens() -> int:
    return estimate_tokens(CONTEXT_HEADER + CONTEXT_FOOTER)


def _add_section(sections: list[ContextSection], weight: int, title: str, lines: list[str]) -> None:
    if not lines:
        return
    sections.append(ContextSection(weight, title + "\n" + "".join(f"{line}\n" for line in lines)))


def _progress_line(progress: dict[str, str]) -> tuple[int, int]:
    complete = sum(1 for status in progress.values() if status == "complete")
    return complete, len(progress)


def gather_sections(
    store: MemoryStore, session_id: str, trigger: str, task_id: str | None
) -> list[ContextSection]:
    sections: list[ContextSection] = []

    failures = store.failed_attempts(limit=FAILED_ATTEMPTS_LIMIT)
    _add_section(
        sections,
        FAILED_ATTEMPTS_WEIGHT,
        "### Failed Attempts (DO NOT RETRY)",
        [
            f"- {obs.title}" + (f" ({obs.recurrence_count}x)" if obs.recurrence_count > 1 else "")
            for obs in failures
        ],
    )

    if trigger == "compact":
        current = store.recent_observations(limit=CURRENT_SESSION_LIMIT, session_id=session_id)
        _add_section(
            sections,
            CURRENT_SESSION_WEIGHT,
            "### Current Session Observations (restored after compaction)",
            [f"- [{obs.type}] {obs.title}" for obs in current],
        )

    summary_count = 5 if trigger == "compact" else 3
    for summary in store.recent_summaries(limit=summary_count):
        lines: list[str] = []
        if summary.request:
            lines.append(f"**Task**: {truncate(summary.request, 200)}")
        if summary.completed:
            lines.append(f"**Completed**: {truncate(summary.completed, 300)}")
        if summary.failed_attempts:
            lines.append(f"**Failed**: {truncate(summary.failed_attempts, 200)}")
        if summary.plan_progress:
            complete, total = _progress_line(summary.plan_progress)
            lines.append(f"**Plan**: {complete}/{total} complete")
        _add_section(
            sections, SUMMARY_WEIGHT, f"### Session ({short_date(summary.created_at)})", lines
        )

    if task_id:
        progress = store.cross_task_progress(task_id)
        if progress:
            complete, total = _progress_line(progress)
            _add_section(
                sections,
                TASK_PROGRESS_WEIGHT,
                f"### Cross-Session Task Progress ({task_id})",
                [f"{complete}/{total} items complete"],
            )

    recent = store.recent_observations(limit=RECENT_OBSERVATIONS_LIMIT)
    recent = sorted(recent, key=lambda obs: obs.importance, reverse=True)
    _add_section(
        sections,
        RECENT_OBSERVATIONS_WEIGHT,
        "### Recent Observations",
        [
            f"- [{obs.type}|imp:{obs.importance}] {obs.title} ({short_date(obs.created_at)})"
            for obs in recent
        ],
    )
    return sections


def pack_sections(sections: list[ContextSection], token_budget: int) -> str:
    """Greedily pack sections by weight into ``token_budget``.

    The header and footer are charged first. A section that does not fit is
    skipped and smaller, lower-weight sections may still be taken after it.
    """
    ordered = sorted(sections, key=lambda section: section.weight, reverse=True)
    used = overhead_tokens()
    included: list[str] = []
    for section in ordered:
        if used + section.tokens > token_budget:
            logger.debug("skipping context section weight=%d tokens=%d", section.weight, section.tokens)
            continue
        included.append(section.text)
        used += section.tokens
    if not included:
        return ""
    return CONTEXT_HEADER + "\n".join(included) + "\n" + CONTEXT_FOOTER


def build_context(
    store: MemoryStore,
    session_id: str,
    trigger: str,
    token_budget: int,
    task_id: str | None = None,
) -> str:
    sections = gather_sections(store, session_id, trigger, task_id)
    return pack_sections(sections, token_budget)
