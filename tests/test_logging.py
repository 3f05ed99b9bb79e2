"""Tests for logging setup and run-id propagation."""

import json
import logging

import pytest

from config import Config
from observability.logging import (
    LOG_FILE_NAME,
    ContextFilter,
    JsonFormatter,
    TextFormatter,
    clear_context,
    set_run_context,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    """Undo handler changes made by setup_logging()."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


def _record(message: str, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord("pipeline", level, __file__, 10, message, None, None)


class TestRunContext:
    """Tests for the run-id context filter."""

    def test_filter_injects_run_id(self):
        set_run_context("abc12345")
        try:
            record = _record("hello")
            ContextFilter().filter(record)
            assert record.run_id == "abc12345"
        finally:
            clear_context()

    def test_placeholder_outside_run(self):
        clear_context()
        record = _record("hello")

        ContextFilter().filter(record)

        assert record.run_id == "-"


class TestJsonFormatter:
    """Tests for structured log output."""

    def test_formats_single_line_json(self):
        record = _record("Fetch done | success=%s")
        record.args = (True,)
        record.run_id = "r1"
        record.source_url = "https://example.com/rss"

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "Fetch done | success=True"
        assert data["level"] == "INFO"
        assert data["run_id"] == "r1"
        assert data["source_url"] == "https://example.com/rss"
        assert "source" not in data

    def test_warning_includes_location(self):
        record = _record("Feed failed", level=logging.WARNING)

        data = json.loads(JsonFormatter().format(record))

        assert data["source"]["line"] == 10


class TestTextFormatter:
    """Tests for human-readable log lines."""

    def test_line_layout(self):
        record = _record("Fetch started | sources=%d")
        record.args = (9,)
        record.run_id = "1a2b3c4d"

        line = TextFormatter().format(record)

        assert line.endswith(" [INFO] [1a2b3c4d] pipeline: Fetch started | sources=9")


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_file_logging_enabled(self, tmp_path, restore_root_logger):
        config = Config(log_dir=tmp_path / "log")

        assert setup_logging(config) is True

        logging.getLogger("pipeline").info("Fetch started | sources=%d", 2)
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "Fetch started | sources=2" in (tmp_path / "log" / LOG_FILE_NAME).read_text()

    def test_falls_back_to_console(self, tmp_path, restore_root_logger):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        config = Config(log_dir=blocker)

        assert setup_logging(config) is False
        assert len(logging.getLogger().handlers) == 1

    def test_size_based_rotation(self, tmp_path, restore_root_logger):
        config = Config(log_dir=tmp_path, log_max_bytes=1024, log_format="json")

        setup_logging(config)

        handler_types = {type(h).__name__ for h in logging.getLogger().handlers}
        assert "RotatingFileHandler" in handler_types
