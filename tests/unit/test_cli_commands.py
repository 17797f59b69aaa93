"""Typer CLI commands."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from runwatch import __version__
from runwatch.cli import app

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    result = runner.invoke(app, ["init", "--path", str(tmp_path)])
    assert result.exit_code == 0, result.output
    return tmp_path / "runwatch.yaml"


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_init_writes_loadable_config(config_file: Path) -> None:
    data = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    assert data["uploads"]["max_attempts"] == 5
    assert "smoke" in data["suites"]
    assert data["catalog"][0]["id"] == "auth.LoginTest"


def test_init_refuses_to_overwrite(config_file: Path) -> None:
    result = runner.invoke(app, ["init", "--path", str(config_file.parent)])
    assert result.exit_code == 1
    forced = runner.invoke(app, ["init", "--path", str(config_file.parent), "--force"])
    assert forced.exit_code == 0


def test_suites_check_and_resolve(config_file: Path) -> None:
    check = runner.invoke(app, ["suites", "check", "--config", str(config_file)])
    assert check.exit_code == 0, check.output
    assert "2 suite(s) resolved" in check.output

    resolved = runner.invoke(app, ["suites", "resolve", "regression", "--config", str(config_file)])
    assert resolved.exit_code == 0, resolved.output
    assert resolved.output.split() == ["auth.LoginTest", "auth.LoginApiTest", "cart.CheckoutTest"]


def test_suites_select(config_file: Path) -> None:
    result = runner.invoke(app, ["suites", "select", "UI & !SLOW", "--config", str(config_file)])
    assert result.exit_code == 0, result.output
    assert result.output.split() == ["auth.LoginTest"]

    unknown = runner.invoke(app, ["suites", "select", "MOBILE", "--config", str(config_file)])
    assert unknown.exit_code == 1


def test_suite_cycle_fails_check(tmp_path: Path) -> None:
    path = tmp_path / "runwatch.yaml"
    path.write_text("suites:\n  a: ['suite:b']\n  b: ['suite:a']\n", encoding="utf-8")
    result = runner.invoke(app, ["suites", "check", "--config", str(path)])
    assert result.exit_code == 1


def test_invalid_config_exits_with_2(tmp_path: Path) -> None:
    path = tmp_path / "runwatch.yaml"
    path.write_text("uploads:\n  workers: -1\n", encoding="utf-8")
    result = runner.invoke(app, ["suites", "check", "--config", str(path)])
    assert result.exit_code == 2


def test_db_commands_require_url(config_file: Path) -> None:
    result = runner.invoke(app, ["db", "init", "--config", str(config_file)])
    assert result.exit_code == 2


def test_db_init_and_status_on_sqlite(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    database = tmp_path / "runwatch.db"
    monkeypatch.setenv("RUNWATCH_DATABASE_URL", f"sqlite+aiosqlite:///{database}")
    config = tmp_path / "absent.yaml"

    init = runner.invoke(app, ["db", "init", "--config", str(config)])
    assert init.exit_code == 0, init.output
    assert "execution_records" in init.output
    assert database.exists()

    status = runner.invoke(app, ["db", "status", "--config", str(config)])
    assert status.exit_code == 0, status.output
    assert "Pass rate: 0.0%" in status.output


def test_mask_url_hides_password() -> None:
    from runwatch.cli.db import _mask_url

    assert _mask_url("postgresql+asyncpg://app:secret@db:5432/runwatch") == "postgresql+asyncpg://app:***@db:5432/runwatch"
    assert _mask_url("sqlite+aiosqlite:///runwatch.db") == "sqlite+aiosqlite:///runwatch.db"
