"""Tests for settings."""

from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest
from pydantic import ValidationError

from stonetrack.config import STONE_DIR, Settings


class TestSettings:
    """Environment-driven configuration."""

    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.get_storage_path() == STONE_DIR / "entries.json"
        assert settings.idle_threshold_seconds == 300
        assert settings.wake_alert_threshold_seconds == 60
        assert settings.week_start == 0
        assert settings.get_export_dir() == Path.cwd()

    def test_environment_overrides(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("STONE_STORAGE_PATH", str(tmp_path / "store.json"))
        monkeypatch.setenv("STONE_IDLE_THRESHOLD_SECONDS", "120")
        monkeypatch.setenv("STONE_WEEK_START", "6")

        settings = Settings(_env_file=None)

        assert settings.get_storage_path() == tmp_path / "store.json"
        assert settings.idle_threshold_seconds == 120
        assert settings.week_start == 6

    def test_week_start_range(self, monkeypatch) -> None:
        monkeypatch.setenv("STONE_WEEK_START", "7")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_configured_timezone(self) -> None:
        try:
            expected = ZoneInfo("Europe/Berlin")
        except ZoneInfoNotFoundError:
            pytest.skip("No timezone database available")

        settings = Settings(_env_file=None, timezone="Europe/Berlin")
        assert settings.get_timezone() == expected

    def test_local_timezone_fallback(self) -> None:
        assert Settings(_env_file=None).get_timezone() is not None
