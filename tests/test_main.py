"""Tests for the command-line runner."""

import json
from argparse import Namespace
from unittest.mock import AsyncMock, patch

from config import DEFAULT_SOURCES
from database import Database
from main import cmd_run, cmd_seed, cmd_status
from models import FetchNewsResult


class TestCmdRun:
    """Tests for the run command."""

    def test_prints_result_and_exits_zero(self, config, capsys):
        result = FetchNewsResult(sources_processed=1, total_new_items=3)

        with patch("pipeline.run_once", new=AsyncMock(return_value=result)):
            code = cmd_run(Namespace(continuous=False, interval=None), config)

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["total_new_items"] == 3
        assert output["success"] is True

    def test_exits_one_on_errors(self, config, capsys):
        result = FetchNewsResult(success=False, errors=["Bad: HTTP 404: Not Found"])

        with patch("pipeline.run_once", new=AsyncMock(return_value=result)):
            code = cmd_run(Namespace(continuous=False, interval=None), config)

        assert code == 1
        assert json.loads(capsys.readouterr().out)["errors"] == ["Bad: HTTP 404: Not Found"]

    def test_interval_overrides_poll_floor(self, config):
        with patch("pipeline.run_continuous", new=AsyncMock()) as mock_continuous:
            code = cmd_run(Namespace(continuous=True, interval=5), config)

        assert code == 0
        assert config.min_poll_seconds == 5
        mock_continuous.assert_awaited_once_with(config)


class TestCmdSeed:
    """Tests for the seed command."""

    def test_seeds_once(self, config, capsys):
        cmd_seed(Namespace(), config)
        cmd_seed(Namespace(), config)

        with Database(config.db_path) as db:
            assert len(db.active_sources()) == len(DEFAULT_SOURCES)
        assert "Seeded 0 source(s)" in capsys.readouterr().out


class TestCmdStatus:
    """Tests for the status command."""

    def test_reports_settings_and_counts(self, config, capsys):
        with Database(config.db_path) as db:
            db.add_source("https://a.example/rss", "A")
            db.set_setting("fetch_interval_minutes", 15)

        assert cmd_status(Namespace(), config) == 0

        status = json.loads(capsys.readouterr().out)
        assert status["settings"]["fetch_interval_minutes"] == 15
        assert status["settings"]["last_fetch_at"] is None
        assert status["settings"]["due"] is True
        assert status["database"]["active_sources"] == 1
