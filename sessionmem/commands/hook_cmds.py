from __future__ import annotations

import sys
from typing import IO

import typer

from sessionmem.config import SessionMemConfig
from sessionmem.hooks import HOOK_EVENTS, dispatch, read_stdin, stdin_timeout_for


def hook_cmd(*, config: SessionMemConfig, event: str, stream: IO[str] | None = None) -> None:
    """Run one hook event over the JSON payload on stdin."""

    if event not in HOOK_EVENTS:
        print(f"Unknown hook event '{event}'. Expected one of: {', '.join(HOOK_EVENTS)}", file=sys.stderr)
        raise typer.Exit(code=2)
    raw = read_stdin(stream or sys.stdin, stdin_timeout_for(event, config))
    output = dispatch(event, raw, config)
    if output:
        # Raw text: the host injects it verbatim, so no rich markup rendering.
        sys.stdout.write(output)
        sys.stdout.flush()
