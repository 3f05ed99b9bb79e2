"""Fetcher settings stored as key/value rows in system_settings.

Each key is independently optional. A missing key, or a value of the wrong
JSON type, falls back to the default:

    fetch_interval_minutes       30
    notification_retention_days  30
    last_fetch_at                None
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

DEFAULT_FETCH_INTERVAL_MINUTES = 30
DEFAULT_RETENTION_DAYS = 30

KEY_FETCH_INTERVAL = "fetch_interval_minutes"
KEY_RETENTION_DAYS = "notification_retention_days"
KEY_LAST_FETCH_AT = "last_fetch_at"


def _is_number(value: Any) -> bool:
    # bool is an int subclass; JSON true/false is not a number here
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class FetcherSettings:
    """Settings loaded once per run.

    Attributes:
        fetch_interval_minutes: Minimum time between runs in continuous mode
        notification_retention_days: Notifications older than this are deleted
        last_fetch_at: Completion time of the last successful orchestration
    """

    fetch_interval_minutes: float = DEFAULT_FETCH_INTERVAL_MINUTES
    notification_retention_days: float = DEFAULT_RETENTION_DAYS
    last_fetch_at: datetime | None = None

    @classmethod
    def from_rows(cls, rows: dict[str, Any]) -> "FetcherSettings":
        """Build settings from decoded key/value rows, applying defaults.

        Args:
            rows: Mapping of setting key to its JSON-decoded value

        Returns:
            FetcherSettings with defaults for absent or mistyped keys
        """
        settings = cls()

        interval = rows.get(KEY_FETCH_INTERVAL)
        if _is_number(interval):
            settings.fetch_interval_minutes = interval

        retention = rows.get(KEY_RETENTION_DAYS)
        if _is_number(retention):
            settings.notification_retention_days = retention

        last_fetch = rows.get(KEY_LAST_FETCH_AT)
        if isinstance(last_fetch, str):
            settings.last_fetch_at = _parse_timestamp(last_fetch)

        return settings

    def next_fetch_at(self) -> datetime | None:
        """When the next run is due, or None if no run has happened yet."""
        if self.last_fetch_at is None:
            return None
        return self.last_fetch_at + timedelta(minutes=self.fetch_interval_minutes)

    def is_due(self, now: datetime | None = None) -> bool:
        """Whether a run is due at `now` (defaults to the current time)."""
        next_at = self.next_fetch_at()
        if next_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now >= next_at
