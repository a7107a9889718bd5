from __future__ import annotations

import logging
import re
import sqlite3
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Generic, TypeVar

from .archiver import archive_and_regenerate
from .classifier import classify, detect_plan_progress
from .config import SessionMemConfig
from .context_pack import FIRST_SESSION_BANNER, build_context
from .ingest.types import HookInput, InvocationContext, parse_hook_input
from .store import MemoryStore
from .store.sessions import task_id_from_plan
from .summarizer import build_summary
from .sync.http_client import request_json
from .sync.outbox import RequestFn, build_sync_payload, drain_sync_queue, sync_to_cloud
from .utils import current_branch

logger = logging.getLogger(__name__)

T = TypeVar("T")

SESSION_END_STDIN_TIMEOUT_S = 5.0

HOOK_EVENTS = (
    "session-start",
    "user-prompt",
    "post-tool-use",
    "failed-attempt",
    "pre-compact",
    "session-end",
)


@dataclass(frozen=True)
class StepResult(Generic[T]):
    """Outcome of a best-effort step: either a value or the error that stopped it."""

    ok: bool
    value: T | None = None
    error: BaseException | None = None


def run_step(name: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> StepResult[T]:
    try:
        return StepResult(ok=True, value=fn(*args, **kwargs))
    except Exception as exc:
        logger.warning("step %s failed", name, exc_info=exc)
        return StepResult(ok=False, error=exc)


def read_stdin(stream: IO[str], timeout_s: float) -> str:
    """Read the whole stream, giving up after ``timeout_s`` with whatever arrived."""
    chunks: list[str] = []

    def _reader() -> None:
        try:
            for chunk in iter(lambda: stream.read(4096), ""):
                chunks.append(chunk)
        except (OSError, ValueError) as exc:
            logger.debug("stdin read stopped", exc_info=exc)

    thread = threading.Thread(target=_reader, name="sessionmem-stdin", daemon=True)
    thread.start()
    thread.join(timeout_s)
    if thread.is_alive():
        logger.warning("stdin not closed after %.1fs, continuing with partial input", timeout_s)
    return "".join(chunks)


def _project_name(hook: HookInput, config: SessionMemConfig) -> str:
    root = hook.cwd or config.project_root
    return Path(root).expanduser().resolve().name or "unknown"


def _ensure_session(
    store: MemoryStore, hook: HookInput, config: SessionMemConfig, *, with_branch: bool = False
) -> None:
    branch: str | None = None
    if with_branch:
        branch = run_step("git-branch", current_branch, hook.cwd or config.project_root).value
    store.upsert_session(hook.session_id, project=_project_name(hook, config), git_branch=branch)


def _plan_file_pattern(config: SessionMemConfig) -> re.Pattern[str]:
    plans_dir = re.escape(config.plans_dir.strip("/"))
    return re.compile(rf"([^\s]*{plans_dir}/[^\s]+\.md)")


def handle_session_start(
    store: MemoryStore, hook: HookInput, config: SessionMemConfig, **_: Any
) -> str:
    _ensure_session(store, hook, config, with_branch=True)
    session = store.get_session(hook.session_id)
    task_id = session.task_id if session else None
    if session is not None and session.plan_file and not task_id:
        task_id = task_id_from_plan(session.plan_file)
        store.link_session_to_task(hook.session_id, task_id)

    trigger = hook.source or "startup"
    banner = ""
    if trigger == "startup" and store.count_sessions() <= 1:
        banner = FIRST_SESSION_BANNER
    context = build_context(
        store, hook.session_id, trigger, config.budget_for(trigger), task_id or hook.task_id
    )
    return banner + context


def handle_user_prompt(
    store: MemoryStore, hook: HookInput, config: SessionMemConfig, **_: Any
) -> str:
    prompt = (hook.prompt or "").strip()
    if not prompt:
        return ""
    _ensure_session(store, hook, config, with_branch=True)
    match = _plan_file_pattern(config).search(prompt)
    if match:
        task_id = store.set_plan_file(hook.session_id, match.group(1))
        store.link_session_to_task(hook.session_id, task_id)
    store.add_user_prompt(hook.session_id, prompt)
    return ""


def handle_post_tool_use(
    store: MemoryStore,
    hook: HookInput,
    config: SessionMemConfig,
    *,
    context: InvocationContext | None = None,
    **_: Any,
) -> str:
    context = context or InvocationContext()
    context.enter_session(hook.session_id)
    _ensure_session(store, hook, config)

    event = hook.tool_event()
    candidate = classify(event, context, config) if event is not None else None
    if candidate is not None:
        store.insert_observation(
            hook.session_id,
            kind=candidate.kind,
            title=candidate.title,
            detail=candidate.detail,
            files_involved=candidate.files_involved,
            plan_item=candidate.plan_item,
            cr_rule=candidate.cr_rule,
            vr_type=candidate.vr_type,
            evidence=candidate.evidence,
            outcome=candidate.outcome,
            importance=candidate.importance,
            original_tokens=candidate.original_tokens,
        )

    if hook.tool_response:
        progress = detect_plan_progress(hook.tool_response)
        if progress:
            run_step("plan-progress", store.merge_plan_progress, hook.session_id, progress)
    return ""


def handle_failed_attempt(
    store: MemoryStore, hook: HookInput, config: SessionMemConfig, **_: Any
) -> str:
    title = (hook.title or "").strip()
    if not title:
        return ""
    _ensure_session(store, hook, config)
    store.record_failed_attempt(hook.session_id, title, hook.detail)
    return ""


def handle_pre_compact(
    store: MemoryStore, hook: HookInput, config: SessionMemConfig, **_: Any
) -> str:
    _ensure_session(store, hook, config)
    summary = build_summary(
        store.session_observations(hook.session_id), store.session_prompts(hook.session_id)
    )
    store.add_summary(hook.session_id, summary, checkpoint="pre_compact")
    return ""


def handle_session_end(
    store: MemoryStore,
    hook: HookInput,
    config: SessionMemConfig,
    *,
    request: RequestFn = request_json,
    **_: Any,
) -> str:
    _ensure_session(store, hook, config)
    observations = store.session_observations(hook.session_id)
    summary = build_summary(observations, store.session_prompts(hook.session_id))
    store.add_summary(hook.session_id, summary, checkpoint="session_end")
    store.end_session(hook.session_id, "completed")

    run_step("archive", archive_and_regenerate, store, hook.session_id, config)
    run_step("sync-drain", drain_sync_queue, store, config, request=request)
    payload = build_sync_payload(
        store.get_session(hook.session_id), hook.session_id, observations, summary
    )
    pushed = run_step("sync-push", sync_to_cloud, store, payload, config, request=request)
    if pushed.ok and pushed.value is not None and not pushed.value.success:
        logger.info("session %s sync deferred: %s", hook.session_id, pushed.value.error)
    return ""


HANDLERS: dict[str, Callable[..., str]] = {
    "session-start": handle_session_start,
    "user-prompt": handle_user_prompt,
    "post-tool-use": handle_post_tool_use,
    "failed-attempt": handle_failed_attempt,
    "pre-compact": handle_pre_compact,
    "session-end": handle_session_end,
}


def stdin_timeout_for(event: str, config: SessionMemConfig) -> float:
    if event == "session-end":
        return max(config.stdin_timeout_s, SESSION_END_STDIN_TIMEOUT_S)
    return config.stdin_timeout_s


def dispatch(
    event: str,
    raw: str | dict[str, Any] | None,
    config: SessionMemConfig,
    *,
    context: InvocationContext | None = None,
    request: RequestFn = request_json,
) -> str:
    """Handle one hook invocation and return the text to print (often empty).

    Malformed input and store failures produce no output; they never raise.
    """
    handler = HANDLERS.get(event)
    if handler is None:
        logger.warning("unknown hook event %r", event)
        return ""
    hook = parse_hook_input(raw)
    if hook is None:
        logger.debug("ignoring %s hook with malformed input", event)
        return ""
    store: MemoryStore | None = None
    try:
        store = MemoryStore(config.resolve(config.db_path))
        return handler(store, hook, config, context=context, request=request)
    except (sqlite3.Error, OSError, ValueError) as exc:
        logger.warning("%s hook failed for session %s", event, hook.session_id, exc_info=exc)
        return ""
    finally:
        if store is not None:
            store.close()
