from __future__ import annotations

import json
from typing import Any

import pytest

from sessionmem import hooks
from sessionmem.config import SessionMemConfig
from sessionmem.context_pack import CONTEXT_FOOTER, CONTEXT_HEADER
from sessionmem.store import MemoryStore
from sessionmem.sync import outbox


@pytest.fixture(autouse=True)
def _quiet(monkeypatch) -> None:
    monkeypatch.setattr(hooks, "current_branch", lambda cwd=None: "feat/a")
    monkeypatch.setattr(outbox.time, "sleep", lambda _s: None)


def _tool(session_id: str, tool: str, tool_input: dict[str, Any], response: Any) -> str:
    return json.dumps(
        {
            "session_id": session_id,
            "hook_event_name": "PostToolUse",
            "tool_name": tool,
            "tool_input": tool_input,
            "tool_response": response,
        }
    )


def _failing_request(calls: list[dict[str, Any]]):
    def _request(method: str, url: str, **kwargs: Any):
        calls.append({"method": method, "url": url, **kwargs})
        return 503, {"error": "maintenance"}

    return _request


def test_session_lifecycle(config: SessionMemConfig) -> None:
    config.cloud_enabled = True
    config.cloud_endpoint = "https://sync.example.com/v1/sync"
    config.cloud_api_key = "k"
    calls: list[dict[str, Any]] = []
    request = _failing_request(calls)

    assert hooks.dispatch("session-start", {"session_id": "s1", "source": "startup"}, config) != ""
    hooks.dispatch("user-prompt", {"session_id": "s1", "prompt": "Add the a.ts module"}, config)
    hooks.dispatch(
        "post-tool-use", _tool("s1", "Write", {"file_path": "a.ts"}, "File created successfully"), config
    )
    hooks.dispatch(
        "post-tool-use",
        _tool("s1", "Bash", {"command": "npm test"}, {"stdout": "FAIL a.test.ts", "is_error": True}),
        config,
    )
    hooks.dispatch("post-tool-use", _tool("s1", "Grep", {"pattern": "x"}, "a.ts:1"), config)
    hooks.dispatch("session-end", {"session_id": "s1"}, config, request=request)

    with MemoryStore(config.resolve(config.db_path)) as store:
        observations = store.session_observations("s1")
        assert [obs.title for obs in observations] == ["Created/wrote: a.ts", "Tests: FAIL"]
        assert observations[1].importance == 4
        assert observations[1].vr_type == "VR-TEST"

        summary = store.latest_summary("s1")
        assert summary is not None
        assert summary.checkpoint == "session_end"
        assert summary.request == "Add the a.ts module"
        assert summary.completed is None
        assert summary.next_steps == "- [vr_check] Tests: FAIL"
        assert summary.files_created == ["a.ts"]
        assert summary.verification_results == {"VR-TEST": "FAIL"}

        session = store.get_session("s1")
        assert session is not None
        assert session.status == "completed"
        assert session.git_branch == "feat/a"

        # Three attempts, then the payload waits in the outbox.
        assert len(calls) == 3
        queued = store.pending_sync()
        assert len(queued) == 1
        payload = json.loads(queued[0].payload)
        assert payload["sessions"][0]["local_session_id"] == "s1"
        assert len(payload["observations"]) == 2

    current = config.resolve(config.session_state_path)
    text = current.read_text()
    assert "**Session ID**: s1" in text
    assert "**Status**: COMPLETED - Add the a.ts module" in text

    # The next session starts with the previous one in context.
    out = hooks.dispatch("session-start", {"session_id": "s2", "source": "startup"}, config)
    assert out.startswith(CONTEXT_HEADER)
    assert out.endswith(CONTEXT_FOOTER)
    assert "Tests: FAIL" in out
    assert "**Task**: Add the a.ts module" in out


def test_failures_recur_across_sessions(config: SessionMemConfig) -> None:
    for sid in ("s1", "s2"):
        hooks.dispatch("failed-attempt", {"session_id": sid, "title": "retry X"}, config)
    out = hooks.dispatch("session-start", {"session_id": "s3", "source": "resume"}, config)
    assert "- retry X (2x)" in out


def test_compact_resume_restores_current_session(config: SessionMemConfig) -> None:
    hooks.dispatch(
        "post-tool-use",
        _tool("s1", "Bash", {"command": "git commit -m 'add parser'"}, "[main abc123] add parser"),
        config,
    )
    hooks.dispatch("pre-compact", {"session_id": "s1", "trigger": "auto"}, config)
    out = hooks.dispatch("session-start", {"session_id": "s1", "source": "compact"}, config)
    assert "### Current Session Observations" in out
    assert "- [feature] Commit: add parser" in out


def test_second_session_end_archives_previous_state(config: SessionMemConfig) -> None:
    hooks.dispatch("user-prompt", {"session_id": "s1", "prompt": "first task"}, config)
    hooks.dispatch("session-end", {"session_id": "s1"}, config)
    hooks.dispatch("user-prompt", {"session_id": "s2", "prompt": "second task"}, config)
    hooks.dispatch("session-end", {"session_id": "s2"}, config)

    archive_dir = config.resolve(config.archive_dir)
    archived = sorted(path.name for path in archive_dir.iterdir())
    assert len(archived) == 1
    assert archived[0].endswith("-first-task.md")
    assert "second task" in config.resolve(config.session_state_path).read_text()
