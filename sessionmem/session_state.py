from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING

from .utils import truncate

if TYPE_CHECKING:
    from .store import MemoryStore
    from .store.types import Observation

GENERATED_BY = "auto-generated by sessionmem"
TASK_SUMMARY_CHARS = 100


def long_date(day: dt.date) -> str:
    return f"{day.strftime('%B')} {day.day}, {day.year}"


def _file_of(obs: Observation, prefix: str) -> str:
    if obs.files_involved:
        return obs.files_involved[0]
    return obs.title.replace(prefix, "", 1)


def _file_table(lines: list[str], heading: str, column: str, files: list[str]) -> None:
    if not files:
        return
    lines.extend([f"### {heading}", "", f"| File | {column} |", f"|------|{'-' * (len(column) + 2)}|"])
    lines.extend(f"| `{path}` | |" for path in files)
    lines.append("")


def generate_current_md(
    store: MemoryStore, session_id: str, *, now: dt.datetime | None = None
) -> str:
    """Render the "current state" markdown document for one session."""
    session = store.get_session(session_id)
    if session is None:
        return "# Session State\n\nNo active session found.\n"

    moment = now or dt.datetime.now(dt.UTC)
    observations = store.session_observations(session_id)
    summary = store.latest_summary(session_id)
    prompts = store.session_prompts(session_id)

    first_prompt = prompts[0].prompt_text if prompts else "Unknown task"
    task_summary = truncate(first_prompt, TASK_SUMMARY_CHARS).replace("\n", " ")
    status = "IN PROGRESS" if session.status == "active" else session.status.upper()

    lines: list[str] = [
        f"# Session State - {long_date(moment.date())}",
        "",
        f"**Last Updated**: {moment.strftime('%Y-%m-%d %H:%M:%S')} ({GENERATED_BY})",
        f"**Status**: {status} - {task_summary}",
        f"**Task**: {task_summary}",
        f"**Session ID**: {session_id}",
        f"**Branch**: {session.git_branch or 'unknown'}",
        "",
        "---",
        "",
    ]

    work = [obs for obs in observations if obs.type in {"feature", "bugfix", "refactor", "file_change"}]
    if work or summary is not None:
        lines.extend(["## COMPLETED WORK", ""])
        if summary is not None and summary.completed:
            lines.extend([summary.completed, ""])
        created = [
            _file_of(obs, "Created/wrote: ")
            for obs in observations
            if obs.type == "file_change" and obs.title.startswith("Created")
        ]
        modified = [
            _file_of(obs, "Edited: ")
            for obs in observations
            if obs.type == "file_change" and obs.title.startswith("Edited")
        ]
        _file_table(lines, "Files Created", "Purpose", list(dict.fromkeys(created)))
        _file_table(lines, "Files Modified", "Change", list(dict.fromkeys(modified)))

    decisions = [obs for obs in observations if obs.type == "decision"]
    if decisions:
        lines.extend(["### Key Decisions", ""])
        lines.extend(f"- {obs.title}" for obs in decisions)
        lines.append("")

    failures = [obs for obs in observations if obs.type == "failed_attempt"]
    if failures:
        lines.extend(["## FAILED ATTEMPTS (DO NOT RETRY)", ""])
        for obs in failures:
            lines.append(f"- {obs.title}")
            if obs.detail:
                lines.append(f"  {truncate(obs.detail, 200)}")
        lines.append("")

    checks = [obs for obs in observations if obs.type == "vr_check"]
    if checks:
        lines.extend(["## VERIFICATION EVIDENCE", ""])
        lines.extend(f"- {obs.title}" for obs in checks)
        lines.append("")

    if summary is not None and summary.next_steps:
        lines.extend(["## PENDING", "", summary.next_steps, ""])

    if session.plan_file:
        lines.extend(["## PLAN DOCUMENT", "", f"`{session.plan_file}`"])
        progress = summary.plan_progress if summary is not None else {}
        if progress:
            complete = sum(1 for status in progress.values() if status == "complete")
            lines.append(f"- Progress: {complete}/{len(progress)} items complete")
        lines.append("")

    return "\n".join(lines)
