from __future__ import annotations

import typer
from rich import print
from rich.markup import escape

from sessionmem.config import SessionMemConfig
from sessionmem.store import MemoryStore
from sessionmem.sync.outbox import drain_sync_queue


def sync_drain_cmd(store: MemoryStore, *, config: SessionMemConfig) -> None:
    """Replay queued sync payloads."""

    if not config.cloud_enabled:
        print("[yellow]Cloud sync is disabled[/yellow]")
        return
    result = drain_sync_queue(store, config)
    print(f"Sent {result.sent}, failed {result.failed}, evicted {result.evicted}")
    if result.failed:
        raise typer.Exit(code=1)


def sync_status_cmd(store: MemoryStore, *, config: SessionMemConfig, limit: int) -> None:
    """Show sync configuration and the outbox backlog."""

    print(f"- Enabled: {config.cloud_enabled}")
    print(f"- Endpoint: {config.cloud_endpoint or 'not configured'}")
    print(f"- API key: {'set' if config.cloud_api_key else 'missing'}")
    categories = [
        name
        for name, enabled in (
            ("memory", config.sync_memory),
            ("analytics", config.sync_analytics),
            ("audit", config.sync_audit),
        )
        if enabled
    ]
    print(f"- Categories: {', '.join(categories) or 'none'}")
    print(f"- Queued payloads: {store.count_pending_sync()}")
    for item in store.pending_sync(limit):
        error = f" last_error={escape(item.last_error)}" if item.last_error else ""
        print(f"  - #{item.id} queued={item.created_at[:19]} retries={item.retry_count}{error}")
