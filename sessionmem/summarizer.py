from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from .observation_kinds import COMPLETED_KINDS
from .store.types import Observation, SessionSummary, UserPrompt
from .utils import truncate

logger = logging.getLogger(__name__)

REQUEST_CHARS = 500
NEXT_STEPS_TAIL = 0.9


def _bullets(observations: Sequence[Observation]) -> str | None:
    text = "\n".join(f"- {obs.title}" for obs in observations)
    return text or None


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def build_summary(
    observations: Sequence[Observation], prompts: Sequence[UserPrompt | str]
) -> SessionSummary:
    """Derive a session digest from its chronologically ordered observations.

    ``next_steps`` is only filled when nothing was completed; it lists the last
    tenth of the observation log, which is empty for an empty log.
    """
    request: str | None = None
    if prompts:
        first = prompts[0]
        text = first if isinstance(first, str) else first.prompt_text
        request = truncate(text, REQUEST_CHARS)

    investigated = "; ".join(obs.title for obs in observations if obs.type == "discovery")
    completed = _bullets([obs for obs in observations if obs.type in COMPLETED_KINDS])

    next_steps: str | None = None
    if completed is None:
        tail = observations[math.floor(len(observations) * NEXT_STEPS_TAIL) :]
        next_steps = "\n".join(f"- [{obs.type}] {obs.title}" for obs in tail)

    files_created: list[str] = []
    files_modified: list[str] = []
    verification_results: dict[str, str] = {}
    plan_progress: dict[str, str] = {}
    for obs in observations:
        if obs.type == "file_change":
            if obs.title.startswith("Created"):
                files_created.extend(obs.files_involved)
            elif obs.title.startswith("Edited"):
                files_modified.extend(obs.files_involved)
        if obs.type == "vr_check" and obs.vr_type:
            verification_results[obs.vr_type] = "PASS" if "PASS" in obs.title else "FAIL"
        if obs.plan_item:
            plan_progress[obs.plan_item] = "in_progress"

    summary = SessionSummary(
        request=request,
        investigated=investigated or None,
        decisions=_bullets([obs for obs in observations if obs.type == "decision"]),
        completed=completed,
        failed_attempts=_bullets([obs for obs in observations if obs.type == "failed_attempt"]),
        next_steps=next_steps,
        files_created=_unique(files_created),
        files_modified=_unique(files_modified),
        verification_results=verification_results,
        plan_progress=plan_progress,
    )
    logger.debug(
        "built summary from %d observations (completed=%s)",
        len(observations),
        completed is not None,
    )
    return summary
