from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from study_guardian.core.config import Settings, TimerSettings


def test_defaults() -> None:
    settings = Settings()

    assert settings.timer.work_minutes == 25
    assert settings.timer.manual_advance is False
    assert settings.sync.max_retries == 5
    assert settings.sync.history_limit == 100
    assert settings.db_path.name == "study_guardian.db"


def test_timer_settings_to_configuration() -> None:
    config = TimerSettings(work_minutes=50, short_break_minutes=10).to_configuration()

    assert config.work_duration_seconds == 3000
    assert config.short_break_duration_seconds == 600
    assert config.long_break_duration_seconds == 900
    assert config.cycles_before_long_break == 4


def test_load_yaml(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        yaml.dump({
            "data_dir": str(tmp_path / "data"),
            "timer": {"work_minutes": 45, "manual_advance": True},
            "sync": {"api_url": "https://study.example/api"},
        })
    )

    settings = Settings.load(config_file)

    assert settings.data_dir == tmp_path / "data"
    assert settings.timer.work_minutes == 45
    assert settings.timer.manual_advance is True
    assert settings.timer.short_break_minutes == 5
    assert settings.sync.api_url == "https://study.example/api"


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    settings = Settings.load(tmp_path / "absent.yaml")

    assert settings.timer.work_minutes == 25


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.dump({"log_level": "DEBUG", "sync": {"max_retries": 2}}))
    monkeypatch.setenv("STUDY_GUARDIAN_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("STUDY_GUARDIAN_SYNC__API_TOKEN", "from-env")

    settings = Settings.load(config_file)

    assert settings.log_level == "WARNING"
    assert settings.sync.api_token == "from-env"
    assert settings.sync.max_retries == 2


def test_save_round_trip_without_token(tmp_path: Path) -> None:
    config_file = tmp_path / "out" / "config.yaml"
    settings = Settings(data_dir=tmp_path / "data")
    settings.timer.cycles_before_long_break = 3
    settings.sync.api_token = "secret"

    settings.save(config_file)

    raw = yaml.safe_load(config_file.read_text())
    assert "api_token" not in raw["sync"]
    assert raw["data_dir"] == str(tmp_path / "data")
    assert Settings.load(config_file).timer.cycles_before_long_break == 3


@pytest.mark.parametrize(
    "data",
    [
        {"timer": {"cycles_before_long_break": 1}},
        {"timer": {"work_minutes": 0}},
        {"log_level": "LOUD"},
    ],
)
def test_invalid_values_rejected(tmp_path: Path, data) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.dump(data))

    with pytest.raises(ValidationError):
        Settings.load(config_file)
