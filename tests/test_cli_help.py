from typer.testing import CliRunner

from sessionmem.cli import app

runner = CliRunner()


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("hook", "search", "context", "timeline", "db", "sync"):
        assert command in result.stdout


def test_db_help_shows_maintenance_commands() -> None:
    result = runner.invoke(app, ["db", "--help"])
    assert result.exit_code == 0
    assert "init" in result.stdout
    assert "prune" in result.stdout


def test_sync_help_shows_outbox_commands() -> None:
    result = runner.invoke(app, ["sync", "--help"])
    assert result.exit_code == 0
    assert "drain" in result.stdout
    assert "status" in result.stdout
