from __future__ import annotations

import io
import json
import sqlite3

import pytest

from sessionmem import hooks
from sessionmem.config import SessionMemConfig
from sessionmem.context_pack import FIRST_SESSION_BANNER
from sessionmem.store import MemoryStore


@pytest.fixture(autouse=True)
def _no_git(monkeypatch) -> None:
    monkeypatch.setattr(hooks, "current_branch", lambda cwd=None: "main")


def _open(config: SessionMemConfig) -> MemoryStore:
    return MemoryStore(config.resolve(config.db_path))


def test_run_step_captures_failures() -> None:
    ok = hooks.run_step("double", lambda value: value * 2, 21)
    assert ok.ok is True
    assert ok.value == 42

    def _fail() -> None:
        raise RuntimeError("nope")

    failed = hooks.run_step("fail", _fail)
    assert failed.ok is False
    assert isinstance(failed.error, RuntimeError)


def test_read_stdin_reads_everything() -> None:
    assert hooks.read_stdin(io.StringIO('{"session_id": "s1"}'), 1.0) == '{"session_id": "s1"}'


def test_stdin_timeout_for(config: SessionMemConfig) -> None:
    assert hooks.stdin_timeout_for("post-tool-use", config) == 3.0
    assert hooks.stdin_timeout_for("session-end", config) == 5.0


def test_malformed_input_is_silent(config: SessionMemConfig) -> None:
    assert hooks.dispatch("post-tool-use", "{not json", config) == ""
    assert hooks.dispatch("post-tool-use", json.dumps({"tool_name": "Bash"}), config) == ""
    assert hooks.dispatch("no-such-event", json.dumps({"session_id": "s1"}), config) == ""
    with _open(config) as store:
        assert store.count_sessions() == 0


def test_store_errors_are_swallowed(config: SessionMemConfig, monkeypatch) -> None:
    def _broken(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(hooks, "MemoryStore", _broken)
    assert hooks.dispatch("user-prompt", {"session_id": "s1", "prompt": "hi"}, config) == ""


def test_first_startup_shows_banner(config: SessionMemConfig) -> None:
    out = hooks.dispatch("session-start", {"session_id": "s1", "source": "startup"}, config)
    assert out == FIRST_SESSION_BANNER
    with _open(config) as store:
        session = store.get_session("s1")
        assert session is not None
        assert session.git_branch == "main"


def test_user_prompt_detects_plan_file(config: SessionMemConfig) -> None:
    hooks.dispatch(
        "user-prompt",
        {"session_id": "s1", "prompt": "Continue with docs/plans/auth-flow.md please"},
        config,
    )
    hooks.dispatch("user-prompt", {"session_id": "s1", "prompt": "  "}, config)
    with _open(config) as store:
        session = store.get_session("s1")
        assert session is not None
        assert session.plan_file == "docs/plans/auth-flow.md"
        assert session.task_id == "auth-flow"
        assert [p.prompt_number for p in store.session_prompts("s1")] == [1]


def test_session_start_links_task_from_plan_file(config: SessionMemConfig) -> None:
    with _open(config) as store:
        store.upsert_session("s1")
        store.conn.execute("UPDATE sessions SET plan_file = ? WHERE session_id = ?", ("docs/plans/x.md", "s1"))
        store.conn.commit()
    hooks.dispatch("session-start", {"session_id": "s1", "source": "resume"}, config)
    with _open(config) as store:
        session = store.get_session("s1")
        assert session is not None
        assert session.task_id == "x"


def test_failed_attempt_signal_dedups(config: SessionMemConfig) -> None:
    for _ in range(2):
        hooks.dispatch(
            "failed-attempt", {"session_id": "s1", "title": "retry X", "detail": "still broken"}, config
        )
    hooks.dispatch("failed-attempt", {"session_id": "s1", "title": "  "}, config)
    with _open(config) as store:
        failures = [obs for obs in store.session_observations("s1") if obs.type == "failed_attempt"]
        assert len(failures) == 1
        assert failures[0].recurrence_count == 2
        assert failures[0].importance == 5


def test_post_tool_use_plan_progress_runs_without_observation(config: SessionMemConfig) -> None:
    hooks.dispatch(
        "post-tool-use",
        {
            "session_id": "s1",
            "tool_name": "Bash",
            "tool_input": {"command": "docker compose up"},
            "tool_response": "P1-1: COMPLETE\nP1-2 done",
        },
        config,
    )
    with _open(config) as store:
        assert store.session_observations("s1") == []
        summary = store.latest_summary("s1")
        assert summary is not None
        assert summary.checkpoint == "plan_progress"
        assert summary.plan_progress == {"P1-1": "complete", "P1-2": "complete"}


def test_duplicate_reads_share_invocation_context(config: SessionMemConfig) -> None:
    context = hooks.InvocationContext()
    event = {
        "session_id": "s1",
        "tool_name": "Read",
        "tool_input": {"file_path": "CLAUDE.md"},
        "tool_response": "rules",
    }
    hooks.dispatch("post-tool-use", event, config, context=context)
    hooks.dispatch("post-tool-use", event, config, context=context)
    with _open(config) as store:
        assert [obs.title for obs in store.session_observations("s1")] == ["Read: CLAUDE.md"]


def test_pre_compact_stores_checkpoint(config: SessionMemConfig) -> None:
    hooks.dispatch("user-prompt", {"session_id": "s1", "prompt": "refactor parser"}, config)
    hooks.dispatch("pre-compact", {"session_id": "s1", "trigger": "auto"}, config)
    with _open(config) as store:
        summary = store.latest_summary("s1")
        assert summary is not None
        assert summary.checkpoint == "pre_compact"
        assert summary.request == "refactor parser"
        session = store.get_session("s1")
        assert session is not None
        assert session.status == "active"


def test_lone_surrogate_in_prompt_is_stored_replaced(config: SessionMemConfig) -> None:
    raw = '{"session_id": "s1", "prompt": "half emoji \\ud83d"}'
    assert hooks.dispatch("user-prompt", raw, config) == ""
    with _open(config) as store:
        prompts = store.session_prompts("s1")
    assert [p.prompt_text for p in prompts] == ["half emoji ?"]


def test_value_errors_in_handlers_are_swallowed(config: SessionMemConfig, monkeypatch) -> None:
    def _bad(*args, **kwargs):
        raise UnicodeEncodeError("utf-8", "\ud83d", 0, 1, "surrogates not allowed")

    monkeypatch.setitem(hooks.HANDLERS, "user-prompt", _bad)
    assert hooks.dispatch("user-prompt", {"session_id": "s1", "prompt": "hi"}, config) == ""
