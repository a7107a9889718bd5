import json

from sessionmem.ingest.events import is_noise, normalize_tool_name
from sessionmem.ingest.types import InvocationContext, ToolEvent, parse_hook_input


def _event(tool: str, output: str = "something", **tool_input: str) -> ToolEvent:
    return ToolEvent(tool_name=tool, tool_input=dict(tool_input), tool_output=output)


def test_parse_hook_input_rejects_malformed() -> None:
    assert parse_hook_input(None) is None
    assert parse_hook_input("") is None
    assert parse_hook_input("{not json") is None
    assert parse_hook_input("[1, 2]") is None
    assert parse_hook_input(json.dumps({"prompt": "no session"})) is None
    assert parse_hook_input(json.dumps({"session_id": "   "})) is None


def test_parse_hook_input_keeps_unknown_keys() -> None:
    hook = parse_hook_input(
        json.dumps(
            {
                "session_id": " s1 ",
                "hook_event_name": "PostToolUse",
                "tool_name": "Bash",
                "tool_input": {"command": "npm test"},
                "tool_response": "ok",
                "permission_mode": "default",
            }
        )
    )
    assert hook is not None
    assert hook.session_id == "s1"
    assert hook.tool_input == {"command": "npm test"}
    assert hook.tool_response == "ok"
    assert hook.extra == {"permission_mode": "default"}


def test_parse_hook_input_flattens_structured_response() -> None:
    hook = parse_hook_input(
        {
            "session_id": "s1",
            "tool_name": "Bash",
            "tool_response": {"stdout": "FAIL a.test.ts", "stderr": "1 failed", "is_error": True},
        }
    )
    assert hook is not None
    assert hook.tool_response == "FAIL a.test.ts\n1 failed"
    assert hook.tool_error is True
    event = hook.tool_event()
    assert event is not None
    assert event.is_error is True


def test_parse_hook_input_reads_trigger_as_source() -> None:
    hook = parse_hook_input({"session_id": "s1", "trigger": "compact"})
    assert hook is not None
    assert hook.source == "compact"
    assert hook.tool_event() is None


def test_normalize_tool_name() -> None:
    assert normalize_tool_name("Bash") == "bash"
    assert normalize_tool_name("mcp.Read") == "read"
    assert normalize_tool_name(None) == "tool"


def test_introspection_tools_are_noise() -> None:
    context = InvocationContext()
    for tool in ("Glob", "Grep", "LS", "WebSearch"):
        assert is_noise(_event(tool), context)


def test_repeated_and_vendored_reads_are_noise() -> None:
    context = InvocationContext()
    assert not is_noise(_event("Read", file_path="src/a.ts"), context)
    assert is_noise(_event("Read", file_path="src/a.ts"), context)
    assert is_noise(_event("Read", file_path="node_modules/x/index.js"), context)
    assert is_noise(_event("Read", file_path="lib/site-packages/y.py"), context)
    assert context.seen_reads == {"src/a.ts", "node_modules/x/index.js", "lib/site-packages/y.py"}


def test_seen_reads_reset_when_session_changes() -> None:
    context = InvocationContext()
    context.enter_session("s1")
    assert not is_noise(_event("Read", file_path="a.md"), context)
    context.enter_session("s1")
    assert is_noise(_event("Read", file_path="a.md"), context)
    context.enter_session("s2")
    assert not is_noise(_event("Read", file_path="a.md"), context)


def test_trivial_commands_and_blank_output_are_noise() -> None:
    context = InvocationContext()
    for command in ("ls -la", "pwd", "echo hi", "cat file.txt", "head -n 5 x", "tail log", "wc -l x"):
        assert is_noise(_event("Bash", command=command), context)
    assert is_noise(_event("Bash", output="   \n", command="npm test"), context)
    assert is_noise(_event("Write", output="", file_path="a.ts"), context)
    assert not is_noise(_event("Bash", command="npm test"), context)
    assert not is_noise(_event("Bash", command="category-tool run"), context)
