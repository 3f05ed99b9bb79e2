"""Configuration management for the news fetcher.

This module provides process-level configuration for the fetcher. Settings
are loaded from environment variables with sensible defaults.

Per-run settings that administrators edit at runtime (fetch interval,
notification retention, last fetch time) are NOT configured here; they live
in the ``system_settings`` table and are loaded once per run
(see ``models.settings.FetcherSettings``).

Environment Variables:
    Storage:
        DB_PATH: SQLite database file path

    Fetching:
        FETCH_TIMEOUT_SECONDS: Total timeout per feed request
        MAX_WORKERS: Maximum concurrent feed fetches (1 = sequential)
        USER_AGENT: User-Agent header sent to feed servers

    Notifications:
        NOTIFICATION_BATCH_SIZE: Rows per notification insert chunk

    Continuous Mode:
        MIN_POLL_SECONDS: Lower bound on the sleep between runs

    Logging:
        LOG_DIR: Directory for log files
        LOG_LEVEL: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_BACKUP_COUNT: Number of rotated log files to keep
        LOG_MAX_BYTES: Max log file size in bytes (0 = time-based rotation)
        LOG_FORMAT: Log format ('text' or 'json' for structured logging)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default.

    Args:
        key: Environment variable name
        default: Value to return if not set

    Returns:
        Environment variable value or default
    """
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Args:
        key: Environment variable name
        default: Value to return if not set

    Returns:
        Parsed integer or default value

    Raises:
        ValueError: If value is set but cannot be parsed as integer
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: '{val}'")


def _env_float(key: str, default: float) -> float:
    """Get float environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as float
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: '{val}'")


DEFAULT_USER_AGENT = "Dashboard News Fetcher/1.0"

# Seed feeds inserted by `main.py seed` (existing URLs are left untouched)
DEFAULT_SOURCES = [
    # === Tech ===
    ("Hacker News", "https://news.ycombinator.com/rss"),
    ("BBC Tech", "https://feeds.bbci.co.uk/news/technology/rss.xml"),
    ("NPR Tech", "https://feeds.npr.org/1019/rss.xml"),

    # === General ===
    ("AP", "https://feedx.net/rss/ap.xml"),
    ("NPR News", "https://feeds.npr.org/1001/rss.xml"),
    ("DR Nyheder", "https://www.dr.dk/nyheder/service/feeds/allenyheder"),

    # === AI ===
    ("MIT Tech AI", "https://www.technologyreview.com/topic/artificial-intelligence/feed"),
    ("VentureBeat AI", "https://venturebeat.com/category/ai/feed/"),

    # === Dev ===
    ("VS Code", "https://code.visualstudio.com/feed.xml"),
]


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    Use Config.load() to create an instance with values from the environment.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Database ===
    db_path: Path = field(default_factory=lambda: Path("news.db"))  # DB_PATH

    # === Fetching ===
    fetch_timeout_seconds: float = 30.0  # FETCH_TIMEOUT_SECONDS - Per-request total timeout
    max_workers: int = 4  # MAX_WORKERS - Concurrent feed fetches
    user_agent: str = DEFAULT_USER_AGENT  # USER_AGENT

    # === Notifications ===
    notification_batch_size: int = 500  # NOTIFICATION_BATCH_SIZE

    # === Continuous Mode ===
    min_poll_seconds: int = 60  # MIN_POLL_SECONDS

    # === Output Directories ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR

    # === Logging Configuration ===
    log_level: str = "INFO"  # LOG_LEVEL - DEBUG, INFO, WARNING, ERROR
    log_backup_count: int = 30  # LOG_BACKUP_COUNT - Number of rotated logs to keep
    log_max_bytes: int = 0  # LOG_MAX_BYTES - Max file size (0 = time-based rotation)
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json' for structured logging

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            db_path=Path(_env("DB_PATH", "news.db")),
            fetch_timeout_seconds=_env_float("FETCH_TIMEOUT_SECONDS", 30.0),
            max_workers=_env_int("MAX_WORKERS", 4),
            user_agent=_env("USER_AGENT", DEFAULT_USER_AGENT),
            notification_batch_size=_env_int("NOTIFICATION_BATCH_SIZE", 500),
            min_poll_seconds=_env_int("MIN_POLL_SECONDS", 60),
            log_dir=Path(_env("LOG_DIR", "log")),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
        )

    def validate(self) -> str | None:
        """Validate configuration values.

        Returns:
            Error message string if invalid, None if valid.
        """
        if self.fetch_timeout_seconds <= 0:
            return "FETCH_TIMEOUT_SECONDS must be positive"
        if self.max_workers <= 0:
            return "MAX_WORKERS must be positive"
        if not self.user_agent.strip():
            return "USER_AGENT must not be empty"
        if self.notification_batch_size <= 0:
            return "NOTIFICATION_BATCH_SIZE must be positive"
        if self.min_poll_seconds <= 0:
            return "MIN_POLL_SECONDS must be positive"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None
