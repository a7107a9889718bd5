from __future__ import annotations

import re
from typing import Any

from .types import InvocationContext, ToolEvent

# Search and listing tools only tell us what the agent looked at.
INTROSPECTION_TOOLS = {
    "glob",
    "grep",
    "ls",
    "list",
    "search",
    "websearch",
}

VENDORED_PATH_MARKERS = ("node_modules", "site-packages", ".venv", "vendor/")

TRIVIAL_COMMAND_RE = re.compile(r"^(ls|pwd|echo|cat\s|head\s|tail\s|wc\s)")


def normalize_tool_name(name: str | None) -> str:
    tool = str(name or "tool").lower()
    if "." in tool:
        tool = tool.split(".")[-1]
    if ":" in tool:
        tool = tool.split(":")[-1]
    return tool


def input_path(tool_input: dict[str, Any]) -> str:
    for key in ("file_path", "path", "notebook_path"):
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def input_command(tool_input: dict[str, Any]) -> str:
    value = tool_input.get("command")
    return value.strip() if isinstance(value, str) else ""


def is_vendored_path(path: str) -> bool:
    return any(marker in path for marker in VENDORED_PATH_MARKERS)


def is_noise(event: ToolEvent, context: InvocationContext) -> bool:
    """Return True for tool calls that carry no memory value.

    Reads are recorded in ``context.seen_reads`` as a side effect so that a
    second read of the same path in this invocation is suppressed.
    """
    tool = normalize_tool_name(event.tool_name)
    if tool in INTROSPECTION_TOOLS:
        return True
    if tool == "read":
        path = input_path(event.tool_input)
        if path in context.seen_reads:
            return True
        context.seen_reads.add(path)
        if is_vendored_path(path):
            return True
    if tool == "bash" and TRIVIAL_COMMAND_RE.match(input_command(event.tool_input)):
        return True
    return not event.tool_output.strip()
