"""
Tests for settings loading from env vars and config.yaml.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from m3log.config import get_settings, load_config_file, reload_settings

CLEARED_ENV = [
    "PORT",
    "DATA_DIR",
    "RETENTION_DAYS",
    "M3LOG_PORT",
    "M3LOG_STORAGE_DATA_DIR",
    "M3LOG_RETENTION_RETENTION_DAYS",
    "M3LOG_SECURITY_RAW_QUERY_ENABLED",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in CLEARED_ENV:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    # get_settings writes resolved values straight into os.environ
    for name in CLEARED_ENV:
        os.environ.pop(name, None)
    get_settings.cache_clear()


class TestSettings:
    """Test defaults and overrides."""

    def test_defaults(self) -> None:
        with patch("m3log.config.load_config_file", return_value={}):
            settings = reload_settings()

        assert settings.port == 3000
        assert settings.retention.retention_days == 7
        assert settings.retention.interval_hours == 24
        assert settings.query.default_limit == 1000
        assert settings.storage.db_path == Path("./data") / "logs.db"

    def test_prefixed_env_vars(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("M3LOG_PORT", "4000")
        monkeypatch.setenv("M3LOG_STORAGE_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("M3LOG_SECURITY_RAW_QUERY_ENABLED", "false")

        with patch("m3log.config.load_config_file", return_value={}):
            settings = reload_settings()

        assert settings.port == 4000
        assert settings.storage.data_dir == tmp_path
        assert settings.security.raw_query_enabled is False

    def test_plain_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "5000")
        monkeypatch.setenv("RETENTION_DAYS", "30")
        monkeypatch.setenv("DATA_DIR", "/srv/logs")

        with patch("m3log.config.load_config_file", return_value={}):
            settings = reload_settings()

        assert settings.port == 5000
        assert settings.retention.retention_days == 30
        assert settings.storage.data_dir == Path("/srv/logs")

    def test_prefixed_wins_over_plain(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "5000")
        monkeypatch.setenv("M3LOG_PORT", "6000")

        with patch("m3log.config.load_config_file", return_value={}):
            settings = reload_settings()

        assert settings.port == 6000

    def test_config_file_provides_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        config = {"server": {"port": 7000}, "retention": {"retention_days": 14}}
        monkeypatch.setenv("M3LOG_RETENTION_RETENTION_DAYS", "3")

        with patch("m3log.config.load_config_file", return_value=config):
            settings = reload_settings()

        assert settings.port == 7000
        # Env overrides the file
        assert settings.retention.retention_days == 3

    def test_load_config_file(self, tmp_path: Path) -> None:
        config_path = tmp_path / "config.yaml"
        config_path.write_text("server:\n  port: 8123\n")
        assert load_config_file(str(config_path)) == {"server": {"port": 8123}}
        assert load_config_file(str(tmp_path / "missing.yaml")) == {}
