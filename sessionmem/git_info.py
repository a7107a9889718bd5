from __future__ import annotations

import subprocess
from collections.abc import Sequence

GIT_TIMEOUT_S = 5.0


def run_command(
    cmd: Sequence[str], cwd: str | None = None, timeout: float = GIT_TIMEOUT_S
) -> str:
    try:
        out = subprocess.check_output(
            cmd, cwd=cwd, stderr=subprocess.DEVNULL, text=True, timeout=timeout
        )
        return out.strip()
    except subprocess.CalledProcessError:
        return ""
    except FileNotFoundError:
        return ""


def current_branch(cwd: str | None = None) -> str | None:
    """Return the checked-out branch, or None outside a git checkout.

    Raises subprocess.TimeoutExpired when git hangs; callers run this as a
    best-effort step.
    """
    branch = run_command(["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if not branch or branch == "HEAD":
        return None
    return branch
