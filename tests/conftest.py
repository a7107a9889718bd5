from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from sessionmem.config import CONFIG_ENV_OVERRIDES, SessionMemConfig
from sessionmem.store import MemoryStore


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
    for env_var in (
        "SESSIONMEM_API_KEY",
        "SESSIONMEM_TEST_COMMANDS",
        "SESSIONMEM_BUILD_COMMANDS",
        "SESSIONMEM_DECISION_PHRASES",
    ):
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setenv("SESSIONMEM_CONFIG", str(tmp_path / "no-config.json"))


@pytest.fixture
def config(tmp_path: Path) -> SessionMemConfig:
    project = tmp_path / "project"
    project.mkdir()
    return SessionMemConfig(
        project_root=str(project),
        db_path=str(tmp_path / "mem.sqlite"),
        log_path=None,
    )


@pytest.fixture
def store(tmp_path: Path) -> Iterator[MemoryStore]:
    mem = MemoryStore(tmp_path / "mem.sqlite")
    try:
        yield mem
    finally:
        mem.close()
