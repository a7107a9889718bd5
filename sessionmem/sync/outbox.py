from __future__ import annotations

import datetime as dt
import http.client
import json
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..store.sync_queue import MAX_SYNC_RETRIES, SYNC_BATCH_SIZE
from .http_client import bearer_headers, request_json

if TYPE_CHECKING:
    from ..config import SessionMemConfig
    from ..store import MemoryStore
    from ..store.types import Observation, SessionRecord, SessionSummary

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_DELAYS_S = (1.0, 2.0, 4.0)

MEMORY_KEYS = ("sessions", "observations")
ANALYTICS_KEYS = ("analytics",)
AUDIT_KEYS = ("audit",)

RequestFn = Callable[..., tuple[int, dict[str, Any] | None]]


@dataclass
class SyncResult:
    success: bool
    synced: dict[str, int] = field(
        default_factory=lambda: {"sessions": 0, "observations": 0, "analytics": 0, "audit": 0}
    )
    error: str | None = None
    status: int | None = None


@dataclass
class DrainResult:
    evicted: int = 0
    sent: int = 0
    failed: int = 0


def filter_payload(payload: dict[str, Any], config: SessionMemConfig) -> dict[str, Any]:
    """Keep only the categories the config allows to leave the machine."""
    allowed: list[str] = []
    if config.sync_memory:
        allowed.extend(MEMORY_KEYS)
    if config.sync_analytics:
        allowed.extend(ANALYTICS_KEYS)
    if config.sync_audit:
        allowed.extend(AUDIT_KEYS)
    return {key: payload[key] for key in allowed if key in payload}


def _synced_counts(body: dict[str, Any] | None) -> dict[str, int]:
    synced = (body or {}).get("synced")
    synced = synced if isinstance(synced, dict) else {}
    counts: dict[str, int] = {}
    for key in ("sessions", "observations", "analytics", "audit"):
        try:
            counts[key] = int(synced.get(key) or 0)
        except (TypeError, ValueError):
            counts[key] = 0
    return counts


def push_once(
    payload: dict[str, Any], config: SessionMemConfig, *, request: RequestFn = request_json
) -> SyncResult:
    """One POST of an already filtered payload. Never raises on transport errors."""
    endpoint, api_key = config.cloud_endpoint, config.cloud_api_key
    if not endpoint or not api_key:
        return SyncResult(success=False, error=_config_error(config))
    try:
        status, body = request(
            "POST",
            endpoint,
            headers=bearer_headers(api_key),
            body=payload,
            timeout_s=config.sync_timeout_s,
        )
    except (OSError, http.client.HTTPException, ValueError) as exc:
        return SyncResult(success=False, error=f"{type(exc).__name__}: {exc}")
    if 200 <= status < 300:
        return SyncResult(success=True, synced=_synced_counts(body), status=status)
    detail = (body or {}).get("error") if isinstance(body, dict) else None
    error = f"HTTP {status}" + (f": {detail}" if detail else "")
    return SyncResult(success=False, error=error, status=status)


def _config_error(config: SessionMemConfig) -> str | None:
    if not config.cloud_api_key:
        return "No API key configured"
    if not config.cloud_endpoint:
        return "No sync endpoint configured"
    return None


def sync_to_cloud(
    store: MemoryStore,
    payload: dict[str, Any],
    config: SessionMemConfig,
    *,
    request: RequestFn = request_json,
) -> SyncResult:
    """Push a payload with bounded retries, parking it in the outbox on failure.

    4xx answers end the attempt loop at once. What gets queued is the
    unfiltered payload, so a later drain applies the filters then in force.
    """
    if not config.cloud_enabled:
        return SyncResult(success=True)
    config_error = _config_error(config)
    if config_error:
        return SyncResult(success=False, error=config_error)

    filtered = filter_payload(payload, config)
    result = SyncResult(success=False, error="no attempt made")
    for attempt in range(MAX_ATTEMPTS):
        result = push_once(filtered, config, request=request)
        if result.success:
            return result
        if result.status is not None and 400 <= result.status < 500:
            break
        if attempt < MAX_ATTEMPTS - 1:
            time.sleep(RETRY_DELAYS_S[attempt])

    logger.warning("sync push failed, queueing payload: %s", result.error)
    store.enqueue_sync(json.dumps(payload, ensure_ascii=False))
    return result


def drain_sync_queue(
    store: MemoryStore,
    config: SessionMemConfig,
    *,
    request: RequestFn = request_json,
    batch_size: int = SYNC_BATCH_SIZE,
) -> DrainResult:
    """Replay queued payloads oldest first, one attempt each.

    Rows that already failed ``MAX_SYNC_RETRIES`` times are dropped unsent.
    """
    result = DrainResult()
    if not config.cloud_enabled or _config_error(config):
        return result
    result.evicted = store.evict_poison_sync(MAX_SYNC_RETRIES)
    if result.evicted:
        logger.warning("evicted %d sync payloads after %d failures", result.evicted, MAX_SYNC_RETRIES)
    for item in store.pending_sync(batch_size):
        try:
            payload = json.loads(item.payload)
        except json.JSONDecodeError as exc:
            store.fail_sync(item.id, f"invalid payload: {exc}")
            result.failed += 1
            continue
        if not isinstance(payload, dict):
            store.fail_sync(item.id, "invalid payload: not an object")
            result.failed += 1
            continue
        outcome = push_once(filter_payload(payload, config), config, request=request)
        if outcome.success:
            store.ack_sync(item.id)
            result.sent += 1
        else:
            store.fail_sync(item.id, outcome.error or "unknown error")
            result.failed += 1
    return result


def build_sync_payload(
    session: SessionRecord | None,
    session_id: str,
    observations: Sequence[Observation],
    summary: SessionSummary,
) -> dict[str, Any]:
    ended_at = dt.datetime.now(dt.UTC).isoformat()
    return {
        "sessions": [
            {
                "local_session_id": session_id,
                "project_name": session.project if session else None,
                "summary": summary.request,
                "started_at": session.started_at if session else None,
                "ended_at": ended_at,
            }
        ],
        "observations": [
            {
                "local_observation_id": f"{session_id}_obs_{obs.id}",
                "session_id": session_id,
                "type": obs.type,
                "content": obs.title + (f": {obs.detail}" if obs.detail else ""),
                "importance": obs.importance,
                "file_path": obs.files_involved[0] if obs.files_involved else None,
            }
            for obs in observations
        ],
    }
