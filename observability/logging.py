"""Log setup for the fetcher: console and rotating-file output tagged with run ids.

Every record passes through ContextFilter, which stamps it with the id of
the fetch run in progress ("-" between runs). Records go to stderr, which
keeps stdout free for the JSON printed by `main.py run`, and to
log/news_fetcher.log, rotated daily or by size.

With LOG_FORMAT=json each record is one JSON object per line; anything a
caller passes via `extra=` becomes a top-level key.

Usage:
    >>> from observability.logging import setup_logging, set_run_context
    >>> setup_logging(config)
    >>> set_run_context("1a2b3c4d")
    >>> logger.info("Fetch started | sources=%d", 9)  # tagged with the run id
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any

LOG_FILE_NAME = "news_fetcher.log"

# Id of the fetch run in progress
run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "run_id", "message",
})


def set_run_context(run_id: str) -> None:
    """Tag subsequent records in this context with a run id."""
    run_id_var.set(run_id)


def clear_context() -> None:
    """Reset the run ID to its placeholder."""
    run_id_var.set("-")


class ContextFilter(logging.Filter):
    """Copy the current run id onto each record as `run_id`."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = run_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: timestamp, level, logger, message, run_id; plus source (file, line,
    function) from WARNING up, exception when present, and any extras.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": getattr(record, "run_id", "-"),
        }

        # Source location for warnings and above
        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed via `extra=`
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """`12:00:01 [INFO] [1a2b3c4d] pipeline: Fetch started | sources=9`"""

    def __init__(self, include_date: bool = False):
        datefmt = "%Y-%m-%d %H:%M:%S" if include_date else "%H:%M:%S"
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] [%(run_id)s] %(name)s: %(message)s",
            datefmt=datefmt,
        )


def setup_logging(config: Any, verbose: bool = False) -> bool:
    """Install the console and file handlers on the root logger.

    Existing root handlers are replaced. An unwritable log directory leaves
    the console handler only.

    Args:
        config: Application configuration with logging settings
        verbose: If True, override config and use DEBUG level for console

    Returns:
        True if file logging is enabled, False if console-only (fallback)
    """
    if verbose:
        console_level = logging.DEBUG
    else:
        console_level = getattr(logging, config.log_level, logging.INFO)

    context_filter = ContextFilter()

    if config.log_format == "json":
        console_fmt: logging.Formatter = JsonFormatter()
        file_fmt: logging.Formatter = JsonFormatter()
    else:
        console_fmt = TextFormatter(include_date=False)
        file_fmt = TextFormatter(include_date=True)

    # Console goes to stderr so `run` can print the JSON result on stdout
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(console_fmt)
    console.addFilter(context_filter)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    root.addHandler(console)

    file_logging_enabled = False
    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        test_file = config.log_dir / ".write_test"
        test_file.touch()
        test_file.unlink()

        log_file = config.log_dir / LOG_FILE_NAME

        if config.log_max_bytes > 0:
            file_handler: logging.Handler = RotatingFileHandler(
                log_file,
                maxBytes=config.log_max_bytes,
                backupCount=config.log_backup_count,
                encoding="utf-8",
            )
        else:
            # Daily rotation at midnight
            file_handler = TimedRotatingFileHandler(
                log_file,
                when="midnight",
                interval=1,
                backupCount=config.log_backup_count,
                encoding="utf-8",
            )

        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_fmt)
        file_handler.addFilter(context_filter)
        root.addHandler(file_handler)
        file_logging_enabled = True

    except OSError as e:
        print(
            f"Warning: Cannot write to log directory '{config.log_dir}': {e}. "
            "Falling back to console-only logging.",
            file=sys.stderr,
        )

    # Connection-level chatter from the HTTP client
    for lib in ("aiohttp", "asyncio"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return file_logging_enabled
