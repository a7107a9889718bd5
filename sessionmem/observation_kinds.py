from __future__ import annotations

from typing import Final

ALLOWED_OBSERVATION_KINDS: Final[tuple[str, ...]] = (
    "decision",
    "bugfix",
    "feature",
    "refactor",
    "discovery",
    "cr_violation",
    "vr_check",
    "pattern_compliance",
    "failed_attempt",
    "file_change",
    "incident_near_miss",
)

COMPLETED_KINDS: Final[frozenset[str]] = frozenset({"feature", "bugfix", "refactor"})

# Kinds whose score depends on a PASS/FAIL outcome.
OUTCOME_KINDS: Final[frozenset[str]] = frozenset({"vr_check", "pattern_compliance"})

_FIXED_IMPORTANCE: Final[dict[str, int]] = {
    "decision": 5,
    "failed_attempt": 5,
    "cr_violation": 4,
    "incident_near_miss": 4,
    "feature": 3,
    "bugfix": 3,
    "refactor": 2,
    "file_change": 1,
    "discovery": 1,
}

DEFAULT_IMPORTANCE: Final[int] = 3


def normalize_observation_kind(kind: str) -> str:
    return (kind or "").strip().lower()


def validate_observation_kind(kind: str) -> str:
    normalized = normalize_observation_kind(kind)
    if normalized in ALLOWED_OBSERVATION_KINDS:
        return normalized
    raise ValueError(
        f"Invalid observation kind '{normalized}'. "
        f"Allowed kinds: {', '.join(ALLOWED_OBSERVATION_KINDS)}"
    )


def assign_importance(kind: str, outcome: str | None = None) -> int:
    """Score an observation from 1 (trivia) to 5 (must resurface).

    Verification and compliance checks are quiet when they pass and loud when
    they fail; unknown kinds get the middle score.
    """
    normalized = normalize_observation_kind(kind)
    if normalized in OUTCOME_KINDS:
        return 2 if (outcome or "").upper() == "PASS" else 4
    return _FIXED_IMPORTANCE.get(normalized, DEFAULT_IMPORTANCE)


def clamp_importance(value: int) -> int:
    return max(1, min(5, int(value)))
