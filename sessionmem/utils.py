from __future__ import annotations

import math

from .fs_paths import display_path, ensure_path  # noqa: F401
from .git_info import current_branch, run_command  # noqa: F401
from .redaction import ANSI_ESCAPE_RE, REDACTION_PATTERNS, clean_output, redact, strip_ansi  # noqa: F401


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]
