from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/sessionmem/config.json").expanduser()

DEFAULT_TOKEN_BUDGETS: dict[str, int] = {
    "startup": 2000,
    "resume": 1000,
    "compact": 4000,
    "clear": 2000,
    "default": 2000,
}

CONFIG_ENV_OVERRIDES = {
    "project_root": "SESSIONMEM_PROJECT_ROOT",
    "db_path": "SESSIONMEM_DB",
    "session_state_path": "SESSIONMEM_SESSION_STATE",
    "archive_dir": "SESSIONMEM_ARCHIVE_DIR",
    "plans_dir": "SESSIONMEM_PLANS_DIR",
    "stdin_timeout_s": "SESSIONMEM_STDIN_TIMEOUT_S",
    "retention_days": "SESSIONMEM_RETENTION_DAYS",
    "log_path": "SESSIONMEM_LOG",
    "cloud_enabled": "SESSIONMEM_CLOUD_ENABLED",
    "cloud_endpoint": "SESSIONMEM_CLOUD_ENDPOINT",
    "cloud_api_key": "SESSIONMEM_CLOUD_API_KEY",
    "sync_memory": "SESSIONMEM_SYNC_MEMORY",
    "sync_analytics": "SESSIONMEM_SYNC_ANALYTICS",
    "sync_audit": "SESSIONMEM_SYNC_AUDIT",
    "sync_timeout_s": "SESSIONMEM_SYNC_TIMEOUT_S",
}

_INT_KEYS = {"retention_days"}
_FLOAT_KEYS = {"stdin_timeout_s", "sync_timeout_s"}
_BOOL_KEYS = {"cloud_enabled", "sync_memory", "sync_analytics", "sync_audit"}
_LIST_KEYS = {
    "knowledge_source_files",
    "decision_phrases",
    "test_commands",
    "build_commands",
    "typecheck_markers",
    "scanner_commands",
}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("SESSIONMEM_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class SessionMemConfig:
    project_root: str = "."
    db_path: str = "~/.sessionmem/memory.sqlite"
    session_state_path: str = ".claude/sessions/CURRENT.md"
    archive_dir: str = ".claude/sessions/archive"
    plans_dir: str = "docs/plans"
    knowledge_source_files: list[str] = field(
        default_factory=lambda: ["CLAUDE.md", "MEMORY.md", "corrections.md"]
    )
    decision_phrases: list[str] = field(
        default_factory=lambda: ["chose", "decided", "switching to", "moving from", "going with"]
    )
    test_commands: list[str] = field(default_factory=lambda: ["npm test", "vitest", "pytest"])
    build_commands: list[str] = field(
        default_factory=lambda: ["npm run build", "tsc --noEmit", "mypy"]
    )
    typecheck_markers: list[str] = field(default_factory=lambda: ["tsc", "mypy"])
    scanner_commands: list[str] = field(default_factory=lambda: ["pattern-scanner"])
    token_budgets: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_TOKEN_BUDGETS))
    stdin_timeout_s: float = 3.0
    retention_days: int = 90
    log_path: str | None = "~/.sessionmem/hooks.log"
    cloud_enabled: bool = False
    cloud_endpoint: str | None = None
    cloud_api_key: str | None = None
    sync_memory: bool = True
    sync_analytics: bool = True
    sync_audit: bool = True
    sync_timeout_s: float = 10.0

    def resolve(self, value: str) -> Path:
        """Resolve a configured path against the project root."""
        path = Path(value).expanduser()
        if path.is_absolute():
            return path
        return Path(self.project_root).expanduser() / path

    def budget_for(self, trigger: str | None) -> int:
        budgets = self.token_budgets
        if trigger and trigger in budgets:
            return budgets[trigger]
        return budgets.get("default", DEFAULT_TOKEN_BUDGETS["default"])


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    if parsed <= 0:
        warnings.warn(f"Non-positive value for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _coerce_str_list(value: object, *, key: str) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, list):
        items: list[str] = []
        for item in value:
            if isinstance(item, str) and item.strip():
                items.append(item.strip())
        return items
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    warnings.warn(f"Invalid list for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return None


def _coerce_budgets(value: object, current: dict[str, int]) -> dict[str, int]:
    if not isinstance(value, dict):
        warnings.warn(f"Invalid token_budgets: {value!r}", RuntimeWarning, stacklevel=2)
        return current
    merged = dict(current)
    for trigger, budget in value.items():
        merged[str(trigger)] = _parse_int(
            budget, merged.get(str(trigger), DEFAULT_TOKEN_BUDGETS["default"]), key=str(trigger)
        )
    return merged


def load_config(path: Path | None = None) -> SessionMemConfig:
    cfg = SessionMemConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError:
            warnings.warn(f"Ignoring invalid config at {config_path}", RuntimeWarning, stacklevel=2)
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_env(cfg)
    return cfg


def _apply_dict(cfg: SessionMemConfig, data: dict[str, Any]) -> SessionMemConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
            continue
        if key in _BOOL_KEYS:
            setattr(cfg, key, _coerce_bool(value, getattr(cfg, key), key=key))
            continue
        if key in _LIST_KEYS:
            parsed = _coerce_str_list(value, key=key)
            if parsed is not None:
                setattr(cfg, key, parsed)
            continue
        if key == "token_budgets":
            cfg.token_budgets = _coerce_budgets(value, cfg.token_budgets)
            continue
        setattr(cfg, key, value)
    return cfg


def _apply_env(cfg: SessionMemConfig) -> SessionMemConfig:
    cfg.project_root = os.getenv("SESSIONMEM_PROJECT_ROOT", cfg.project_root)
    cfg.db_path = os.getenv("SESSIONMEM_DB", cfg.db_path)
    cfg.session_state_path = os.getenv("SESSIONMEM_SESSION_STATE", cfg.session_state_path)
    cfg.archive_dir = os.getenv("SESSIONMEM_ARCHIVE_DIR", cfg.archive_dir)
    cfg.plans_dir = os.getenv("SESSIONMEM_PLANS_DIR", cfg.plans_dir)
    cfg.stdin_timeout_s = _parse_float(
        os.getenv("SESSIONMEM_STDIN_TIMEOUT_S"), cfg.stdin_timeout_s, key="stdin_timeout_s"
    )
    cfg.retention_days = _parse_int(
        os.getenv("SESSIONMEM_RETENTION_DAYS"), cfg.retention_days, key="retention_days"
    )
    cfg.log_path = os.getenv("SESSIONMEM_LOG", cfg.log_path)
    cfg.cloud_enabled = _parse_bool(os.getenv("SESSIONMEM_CLOUD_ENABLED"), cfg.cloud_enabled)
    cfg.cloud_endpoint = os.getenv("SESSIONMEM_CLOUD_ENDPOINT", cfg.cloud_endpoint)
    cfg.cloud_api_key = (
        os.getenv("SESSIONMEM_CLOUD_API_KEY") or os.getenv("SESSIONMEM_API_KEY") or cfg.cloud_api_key
    )
    cfg.sync_memory = _parse_bool(os.getenv("SESSIONMEM_SYNC_MEMORY"), cfg.sync_memory)
    cfg.sync_analytics = _parse_bool(os.getenv("SESSIONMEM_SYNC_ANALYTICS"), cfg.sync_analytics)
    cfg.sync_audit = _parse_bool(os.getenv("SESSIONMEM_SYNC_AUDIT"), cfg.sync_audit)
    cfg.sync_timeout_s = _parse_float(
        os.getenv("SESSIONMEM_SYNC_TIMEOUT_S"), cfg.sync_timeout_s, key="sync_timeout_s"
    )

    for key in ("test_commands", "build_commands", "decision_phrases"):
        parsed = _coerce_str_list(os.getenv(f"SESSIONMEM_{key.upper()}"), key=key)
        if parsed is not None:
            setattr(cfg, key, parsed)
    return cfg
