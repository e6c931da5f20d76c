from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from typer.testing import CliRunner

from study_guardian import __version__
from study_guardian.cli.main import app
from study_guardian.core.config import get_settings
from study_guardian.storage.database import Database, init_database
from study_guardian.storage.session_store import SessionStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("STUDY_GUARDIAN_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("STUDY_GUARDIAN_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("STUDY_GUARDIAN_SYNC__ENABLED", "false")
    monkeypatch.setenv("COLUMNS", "200")
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


def _seed(records, history: bool = False) -> None:
    async def run():
        db = await init_database(get_settings().db_path)
        try:
            store = SessionStore(db)
            for record in records:
                if history:
                    await store.append_history(record, synced=True)
                else:
                    await store.enqueue(record)
        finally:
            await db.close()

    asyncio.run(run())


def test_version() -> None:
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_config_show() -> None:
    result = runner.invoke(app, ["config-show"])

    assert result.exit_code == 0
    assert "Study Guardian Configuration" in result.stdout
    assert "25 min" in result.stdout


def test_presets_offline_shows_default() -> None:
    result = runner.invoke(app, ["presets"])

    assert result.exit_code == 0
    assert "Classic Pomodoro" in result.stdout
    assert "default" in result.stdout


def test_queue_empty() -> None:
    result = runner.invoke(app, ["queue"])

    assert result.exit_code == 0
    assert "No sessions waiting" in result.stdout


def test_queue_lists_pending_sessions(make_record) -> None:
    _seed([make_record(key="abcdef0123456789")])

    result = runner.invoke(app, ["queue"])

    assert result.exit_code == 0
    assert "abcdef01" in result.stdout
    assert "Focus session" in result.stdout


def test_queue_reports_failed_integrity_check(monkeypatch) -> None:
    async def corrupt(self) -> bool:
        return False

    monkeypatch.setattr(Database, "check_integrity", corrupt)

    result = runner.invoke(app, ["queue"])

    assert result.exit_code == 0
    assert "integrity check failed" in result.stdout
    assert "No sessions waiting" in result.stdout


def test_flush_requires_sync() -> None:
    result = runner.invoke(app, ["flush"])

    assert result.exit_code == 1
    assert "Sync is disabled" in result.stdout


def test_suggest_uses_local_history(make_record) -> None:
    _seed([make_record(actual=3600, planned=3600)], history=True)

    result = runner.invoke(app, ["suggest"])

    assert result.exit_code == 0
    assert "10 min" in result.stdout
    assert "local history" in result.stdout
