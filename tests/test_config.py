import json
from pathlib import Path

import pytest

from sessionmem.config import (
    DEFAULT_TOKEN_BUDGETS,
    SessionMemConfig,
    get_config_path,
    get_env_overrides,
    load_config,
    read_config_file,
)


def test_read_config_file_rejects_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{not-json}")
    with pytest.raises(ValueError, match="invalid config json"):
        read_config_file(config_path)


def test_read_config_file_rejects_non_object(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("[1, 2]")
    with pytest.raises(ValueError, match="config must be an object"):
        read_config_file(config_path)


def test_read_config_file_missing_or_blank_is_empty(tmp_path: Path) -> None:
    assert read_config_file(tmp_path / "missing.json") == {}
    blank = tmp_path / "blank.json"
    blank.write_text("  \n")
    assert read_config_file(blank) == {}


def test_get_config_path_uses_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SESSIONMEM_CONFIG", str(tmp_path / "custom.json"))
    assert get_config_path() == tmp_path / "custom.json"


def test_defaults() -> None:
    cfg = SessionMemConfig()
    assert cfg.token_budgets == DEFAULT_TOKEN_BUDGETS
    assert cfg.budget_for("compact") == 4000
    assert cfg.budget_for("resume") == 1000
    assert cfg.budget_for("weird") == 2000
    assert cfg.budget_for(None) == 2000
    assert "pytest" in cfg.test_commands
    assert cfg.cloud_enabled is False


def test_load_config_from_file(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "test_commands": ["make test"],
                "token_budgets": {"startup": 500},
                "cloud_enabled": "yes",
                "retention_days": 7,
                "unknown_key": "ignored",
            }
        )
    )
    cfg = load_config(config_path)
    assert cfg.test_commands == ["make test"]
    assert cfg.token_budgets["startup"] == 500
    assert cfg.token_budgets["compact"] == 4000
    assert cfg.cloud_enabled is True
    assert cfg.retention_days == 7
    assert not hasattr(cfg, "unknown_key")


def test_env_overrides_beat_file(monkeypatch, tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"db_path": "/from/file.sqlite", "cloud_api_key": "file"}))
    monkeypatch.setenv("SESSIONMEM_DB", "/from/env.sqlite")
    monkeypatch.setenv("SESSIONMEM_TEST_COMMANDS", "make check, tox")
    cfg = load_config(config_path)
    assert cfg.db_path == "/from/env.sqlite"
    assert cfg.cloud_api_key == "file"
    assert cfg.test_commands == ["make check", "tox"]


def test_api_key_falls_back_to_generic_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SESSIONMEM_API_KEY", "generic")
    assert load_config(tmp_path / "missing.json").cloud_api_key == "generic"
    monkeypatch.setenv("SESSIONMEM_CLOUD_API_KEY", "specific")
    assert load_config(tmp_path / "missing.json").cloud_api_key == "specific"


def test_invalid_values_warn_and_keep_defaults(monkeypatch, tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"retention_days": "forever"}))
    monkeypatch.setenv("SESSIONMEM_STDIN_TIMEOUT_S", "-1")
    with pytest.warns(RuntimeWarning):
        cfg = load_config(config_path)
    assert cfg.retention_days == 90
    assert cfg.stdin_timeout_s == 3.0


def test_invalid_config_json_warns(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{oops")
    with pytest.warns(RuntimeWarning, match="invalid config"):
        cfg = load_config(config_path)
    assert cfg == SessionMemConfig()


def test_get_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("SESSIONMEM_PLANS_DIR", "plans")
    assert get_env_overrides() == {"plans_dir": "plans"}


def test_resolve_relative_to_project_root(tmp_path: Path) -> None:
    cfg = SessionMemConfig(project_root=str(tmp_path))
    assert cfg.resolve(".claude/sessions/CURRENT.md") == tmp_path / ".claude/sessions/CURRENT.md"
    assert cfg.resolve("/abs/file.md") == Path("/abs/file.md")
