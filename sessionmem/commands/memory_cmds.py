from __future__ import annotations

import sys

from rich import print
from rich.markup import escape

from sessionmem.context_pack import build_context
from sessionmem.store import MemoryStore


def search_cmd(
    store: MemoryStore, *, query: str, kind: str | None, limit: int, prompts: bool
) -> None:
    """Full-text search over observations and user prompts."""

    observations = store.search_observations(query, kind=kind, limit=limit)
    if not observations and not prompts:
        print("No matching observations")
        return
    for obs in observations:
        recurrence = f" ({obs.recurrence_count}x)" if obs.recurrence_count > 1 else ""
        print(
            f"#{obs.id} \\[{obs.type}|imp:{obs.importance}] {escape(obs.title)}{recurrence} "
            f"[dim]{obs.created_at[:10]} {escape(obs.session_id)}[/dim]"
        )
    if not prompts:
        return
    matches = store.search_prompts(query, limit=limit)
    if not matches and not observations:
        print("No matches")
        return
    for prompt in matches:
        text = prompt.prompt_text.replace("\n", " ")[:120]
        print(f"prompt {escape(prompt.session_id)}#{prompt.prompt_number}: {escape(text)}")


def context_cmd(
    store: MemoryStore, *, session_id: str, trigger: str, budget: int, task_id: str | None
) -> None:
    """Print the context block a session start would inject."""

    session = store.get_session(session_id)
    task_id = task_id or (session.task_id if session else None)
    text = build_context(store, session_id, trigger, budget, task_id)
    if not text:
        print("[yellow]Nothing fits the token budget[/yellow]", file=sys.stderr)
        return
    sys.stdout.write(text)


def timeline_cmd(store: MemoryStore, *, session_id: str) -> None:
    """Show prompts, observations and summaries of one session in order."""

    entries = store.session_timeline(session_id)
    if not entries:
        print(f"No timeline for session {escape(session_id)}")
        return
    for entry in entries:
        label = entry["kind"]
        if entry["kind"] == "observation":
            label = f"{entry['kind']}:{entry['metadata']['type']}"
        elif entry["kind"] == "summary":
            label = f"{entry['kind']}:{entry['metadata']['checkpoint']}"
        text = entry["text"].replace("\n", " ")[:160]
        print(f"{entry['created_at'][:19]} \\[{label}] {escape(text)}")
