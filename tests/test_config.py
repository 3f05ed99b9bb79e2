"""Tests for environment-based configuration."""

from pathlib import Path

import pytest

from config import DEFAULT_SOURCES, DEFAULT_USER_AGENT, Config


class TestConfigLoad:
    """Tests for Config.load()."""

    def test_defaults(self, monkeypatch):
        for key in ("DB_PATH", "MAX_WORKERS", "FETCH_TIMEOUT_SECONDS", "USER_AGENT", "LOG_FORMAT"):
            monkeypatch.delenv(key, raising=False)

        config = Config.load()

        assert config.db_path == Path("news.db")
        assert config.max_workers == 4
        assert config.fetch_timeout_seconds == 30.0
        assert config.user_agent == DEFAULT_USER_AGENT == "Dashboard News Fetcher/1.0"
        assert config.log_format == "text"
        assert config.validate() is None

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DB_PATH", "/tmp/other.db")
        monkeypatch.setenv("MAX_WORKERS", "1")
        monkeypatch.setenv("FETCH_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_FORMAT", "JSON")

        config = Config.load()

        assert config.db_path == Path("/tmp/other.db")
        assert config.max_workers == 1
        assert config.fetch_timeout_seconds == 2.5
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    def test_invalid_integer_raises(self, monkeypatch):
        monkeypatch.setenv("MAX_WORKERS", "many")

        with pytest.raises(ValueError, match="MAX_WORKERS"):
            Config.load()


class TestConfigValidate:
    """Tests for Config.validate()."""

    @pytest.mark.parametrize(
        "overrides, expected",
        [
            ({"max_workers": 0}, "MAX_WORKERS must be positive"),
            ({"fetch_timeout_seconds": 0}, "FETCH_TIMEOUT_SECONDS must be positive"),
            ({"notification_batch_size": -1}, "NOTIFICATION_BATCH_SIZE must be positive"),
            ({"user_agent": "  "}, "USER_AGENT must not be empty"),
            ({"log_level": "LOUD"}, "Invalid LOG_LEVEL"),
            ({"log_format": "xml"}, "Invalid LOG_FORMAT"),
        ],
    )
    def test_rejects_invalid_values(self, overrides, expected):
        error = Config(**overrides).validate()

        assert error is not None
        assert error.startswith(expected)

    def test_default_sources_are_unique(self):
        urls = [url for _, url in DEFAULT_SOURCES]

        assert len(urls) == len(set(urls))
        assert all(url.startswith("https://") for url in urls)
