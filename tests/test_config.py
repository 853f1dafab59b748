"""Tests for Settings loaded from the environment."""

import os
from pathlib import Path

import pytest

from tether.config import Settings

_VARS = [
    "TETHER_VAULT_PATH",
    "TETHER_BACKEND_URL",
    "TETHER_REQUEST_TIMEOUT",
    "TETHER_STREAM_TIMEOUT",
    "TETHER_IMPORT_ARCHIVED",
    "TETHER_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Start from an empty TETHER_* environment; .env loading writes to os.environ."""
    saved = {name: os.environ.pop(name) for name in _VARS if name in os.environ}
    monkeypatch.chdir(tmp_path)
    yield
    for name in _VARS:
        os.environ.pop(name, None)
    os.environ.update(saved)


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env()
        assert settings.vault_path == Path("vault")
        assert settings.backend_url == "http://localhost:3333"
        assert settings.request_timeout == 30.0
        assert settings.stream_timeout == 60.0
        assert settings.import_archived is True
        assert settings.log_level == "INFO"
        assert settings.index_path == Path("vault") / ".tether" / "index.db"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("TETHER_VAULT_PATH", "/data/vault")
        monkeypatch.setenv("TETHER_BACKEND_URL", "http://agent:8080")
        monkeypatch.setenv("TETHER_STREAM_TIMEOUT", "5")
        monkeypatch.setenv("TETHER_IMPORT_ARCHIVED", "no")
        monkeypatch.setenv("TETHER_LOG_LEVEL", "debug")

        settings = Settings.from_env()
        assert settings.vault_path == Path("/data/vault")
        assert settings.backend_url == "http://agent:8080"
        assert settings.stream_timeout == 5.0
        assert settings.import_archived is False
        assert settings.log_level == "DEBUG"

    def test_env_file(self, monkeypatch, tmp_path):
        env_file = tmp_path / "custom.env"
        env_file.write_text("TETHER_BACKEND_URL=http://from-file:1\n", encoding="utf-8")
        settings = Settings.from_env(env_file)
        assert settings.backend_url == "http://from-file:1"

    def test_environment_wins_over_env_file(self, monkeypatch, tmp_path):
        (tmp_path / ".env").write_text("TETHER_LOG_LEVEL=ERROR\n", encoding="utf-8")
        monkeypatch.setenv("TETHER_LOG_LEVEL", "WARNING")
        assert Settings.from_env().log_level == "WARNING"
