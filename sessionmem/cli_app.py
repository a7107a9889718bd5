from __future__ import annotations

import logging
import sys
import warnings

import typer
from rich import print

from . import __version__
from .commands.db_cmds import init_db_cmd, prune_observations_cmd
from .commands.hook_cmds import hook_cmd
from .commands.memory_cmds import context_cmd, search_cmd, timeline_cmd
from .commands.sync_cmds import sync_drain_cmd, sync_status_cmd
from .config import SessionMemConfig, load_config
from .fs_paths import ensure_path
from .store import MemoryStore

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

app = typer.Typer(help="sessionmem: session memory for coding agents")
sync_app = typer.Typer(help="Replay and inspect the cloud sync outbox")
db_app = typer.Typer(help="Database maintenance")
app.add_typer(sync_app, name="sync")
app.add_typer(db_app, name="db")


def _config() -> SessionMemConfig:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        config = load_config()
    for warning in caught:
        logging.getLogger("sessionmem.config").warning("%s", warning.message)
    return config


def _configure_logging(config: SessionMemConfig) -> None:
    root = logging.getLogger("sessionmem")
    if root.handlers:
        return
    root.setLevel(logging.INFO)
    handler: logging.Handler = logging.NullHandler()
    if config.log_path:
        try:
            handler = logging.FileHandler(
                ensure_path(config.resolve(config.log_path)), encoding="utf-8"
            )
        except OSError:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


def _store(db_path: str | None, config: SessionMemConfig) -> MemoryStore:
    return MemoryStore(db_path or config.resolve(config.db_path))


@app.callback()
def main_callback() -> None:
    _configure_logging(_config())


@app.command()
def hook(event: str = typer.Argument(..., help="Hook event name, e.g. session-start")) -> None:
    """Run a hook handler over the JSON payload on stdin."""
    hook_cmd(config=_config(), event=event)


@app.command()
def search(
    query: str,
    kind: str = typer.Option(None, help="Only observations of this kind"),
    limit: int = typer.Option(10, help="Max results"),
    prompts: bool = typer.Option(True, help="Also search user prompts"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Search recorded observations and prompts by keyword."""
    store = _store(db_path, _config())
    try:
        search_cmd(store, query=query, kind=kind, limit=limit, prompts=prompts)
    finally:
        store.close()


@app.command()
def context(
    session_id: str,
    trigger: str = typer.Option("startup", help="startup, resume, compact or clear"),
    budget: int = typer.Option(None, help="Token budget (defaults to the trigger's budget)"),
    task_id: str = typer.Option(None, help="Task to report progress for"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Print the context block a session start would inject."""
    config = _config()
    store = _store(db_path, config)
    try:
        context_cmd(
            store,
            session_id=session_id,
            trigger=trigger,
            budget=budget if budget is not None else config.budget_for(trigger),
            task_id=task_id,
        )
    finally:
        store.close()


@app.command()
def timeline(
    session_id: str,
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Show one session's prompts, observations and summaries in order."""
    store = _store(db_path, _config())
    try:
        timeline_cmd(store, session_id=session_id)
    finally:
        store.close()


@db_app.command("init")
def db_init(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Create the SQLite database (no-op if it already exists)."""
    store = _store(db_path, _config())
    try:
        init_db_cmd(store)
    finally:
        store.close()


@db_app.command("prune")
def db_prune(
    days: int = typer.Option(None, help="Retention window in days (defaults to config)"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Delete observations older than the retention window."""
    config = _config()
    store = _store(db_path, config)
    try:
        prune_observations_cmd(store, days=days if days is not None else config.retention_days)
    finally:
        store.close()


@sync_app.command("drain")
def sync_drain(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Replay queued sync payloads."""
    config = _config()
    store = _store(db_path, config)
    try:
        sync_drain_cmd(store, config=config)
    finally:
        store.close()


@sync_app.command("status")
def sync_status(
    limit: int = typer.Option(10, help="Queued payloads to list"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Show sync configuration and queued payloads."""
    config = _config()
    store = _store(db_path, config)
    try:
        sync_status_cmd(store, config=config, limit=limit)
    finally:
        store.close()


def main() -> None:
    app()


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)
