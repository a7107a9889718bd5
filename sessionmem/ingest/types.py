from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

KNOWN_HOOK_KEYS = frozenset(
    {
        "session_id",
        "transcript_path",
        "cwd",
        "hook_event_name",
        "tool_name",
        "tool_input",
        "tool_response",
        "prompt",
        "source",
        "trigger",
        "title",
        "detail",
        "assistant_text",
        "task_id",
    }
)


@dataclass(frozen=True, slots=True)
class ToolEvent:
    tool_name: str
    tool_input: dict[str, Any]
    tool_output: str
    is_error: bool = False
    assistant_text: str | None = None


@dataclass
class HookInput:
    """One hook payload: the known keys typed, everything else in ``extra``."""

    session_id: str
    transcript_path: str | None = None
    cwd: str | None = None
    hook_event_name: str | None = None
    tool_name: str | None = None
    tool_input: dict[str, Any] = field(default_factory=dict)
    tool_response: str = ""
    tool_error: bool = False
    prompt: str | None = None
    source: str | None = None
    title: str | None = None
    detail: str | None = None
    assistant_text: str | None = None
    task_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def tool_event(self) -> ToolEvent | None:
        if not self.tool_name:
            return None
        return ToolEvent(
            tool_name=self.tool_name,
            tool_input=self.tool_input,
            tool_output=self.tool_response,
            is_error=self.tool_error,
            assistant_text=self.assistant_text,
        )


@dataclass
class InvocationContext:
    """Per-invocation state used to suppress duplicate reads."""

    session_id: str | None = None
    seen_reads: set[str] = field(default_factory=set)

    def enter_session(self, session_id: str) -> None:
        if session_id != self.session_id:
            self.seen_reads.clear()
            self.session_id = session_id


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


def _response_text(value: Any) -> tuple[str, bool]:
    """Flatten a tool response into text plus an error flag."""
    if value is None:
        return "", False
    if isinstance(value, str):
        return value, False
    if isinstance(value, dict):
        is_error = bool(value.get("is_error") or value.get("error"))
        parts: list[str] = []
        for key in ("output", "stdout", "content", "result", "stderr", "error"):
            chunk = value.get(key)
            if isinstance(chunk, str) and chunk:
                parts.append(chunk)
        if parts:
            return "\n".join(parts), is_error
        return json.dumps(value, ensure_ascii=False), is_error
    if isinstance(value, list):
        texts = [item.get("text") for item in value if isinstance(item, dict)]
        joined = "\n".join(text for text in texts if isinstance(text, str))
        return joined or json.dumps(value, ensure_ascii=False), False
    return str(value), False


def _scrub_surrogates(value: Any) -> Any:
    """Replace lone surrogates (a truncated emoji escape) so every string encodes as UTF-8."""
    if isinstance(value, str):
        return value.encode("utf-8", "replace").decode("utf-8")
    if isinstance(value, dict):
        return {_scrub_surrogates(key): _scrub_surrogates(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_scrub_surrogates(item) for item in value]
    return value


def parse_hook_input(raw: str | dict[str, Any] | None) -> HookInput | None:
    """Parse a hook payload. Returns None for anything malformed or without a session id."""
    if raw is None:
        return None
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return None
    else:
        data = raw
    if not isinstance(data, dict):
        return None
    data = _scrub_surrogates(data)
    session_id = data.get("session_id")
    if not isinstance(session_id, str) or not session_id.strip():
        return None
    tool_input = data.get("tool_input")
    response, is_error = _response_text(data.get("tool_response"))
    return HookInput(
        session_id=session_id.strip(),
        transcript_path=_optional_str(data.get("transcript_path")),
        cwd=_optional_str(data.get("cwd")),
        hook_event_name=_optional_str(data.get("hook_event_name")),
        tool_name=_optional_str(data.get("tool_name")),
        tool_input=tool_input if isinstance(tool_input, dict) else {},
        tool_response=response,
        tool_error=is_error,
        prompt=_optional_str(data.get("prompt")),
        source=_optional_str(data.get("source") or data.get("trigger")),
        title=_optional_str(data.get("title")),
        detail=_optional_str(data.get("detail")),
        assistant_text=_optional_str(data.get("assistant_text")),
        task_id=_optional_str(data.get("task_id")),
        extra={key: value for key, value in data.items() if key not in KNOWN_HOOK_KEYS},
    )
