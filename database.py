"""Database operations for the news fetcher.

This module provides SQLite-based storage for feed sources, deduplicated
news items, users and their source exclusions, notifications, and the
key/value system settings.

Database Schema:
    system_settings:
        - key (TEXT, PK): Setting name
        - value (TEXT): JSON-encoded value
        - updated_at (INTEGER): Last write (Unix epoch)

    news_sources:
        - id (TEXT, PK), url (TEXT, UNIQUE), name (TEXT)
        - is_active (INTEGER): 0/1 gate, inactive sources are never fetched

    news_items:
        - guid_hash (TEXT, UNIQUE): SHA-256 dedup key
        - source_id, title, summary, link, image_url
        - published_at, created_at (INTEGER): Unix epoch

    users / user_news_source_exclusions:
        - One row per user; (user_id, source_id) opt-out pairs

    notifications:
        - user_id, type, title, message
        - metadata (TEXT): JSON object
        - created_at (INTEGER): Unix epoch, drives retention

Error Handling:
    Every sqlite3.Error raised by a pipeline read or write is re-raised as
    StorageError with a "Failed to <operation>" message. Storage failures are
    fatal to a run; the orchestrator reports the message as the run's error.

Features:
    - WAL mode for concurrent read/write access
    - Default settings seeded on first open
    - Single-transaction batch inserts
    - Context manager support for auto-cleanup
"""

import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from models.feed import FeedSource, NewsItem
from models.notification import Notification, UserWithExclusions
from models.settings import (
    DEFAULT_FETCH_INTERVAL_MINUTES,
    DEFAULT_RETENTION_DAYS,
    KEY_FETCH_INTERVAL,
    KEY_LAST_FETCH_AT,
    KEY_RETENTION_DAYS,
    FetcherSettings,
)

logger = logging.getLogger(__name__)

# SQLite's default limit on host parameters is 999 on older builds
MAX_QUERY_PARAMS = 900


class StorageError(Exception):
    """A read or write against the store failed."""


def _epoch(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def _chunks(values: list, size: int) -> Iterable[list]:
    for i in range(0, len(values), size):
        yield values[i:i + size]


class Database:
    """SQLite store for the news fetcher.

    Example:
        >>> with Database("news.db") as db:
        ...     sources = db.active_sources()
        ...     seen = db.existing_hashes({"ab12..."})
    """

    # SQL schema for all tables and indexes
    SCHEMA = """
    -- Admin-configurable key/value settings
    CREATE TABLE IF NOT EXISTS system_settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,             -- JSON-encoded
        updated_at INTEGER NOT NULL
    );

    -- Feed endpoints
    CREATE TABLE IF NOT EXISTS news_sources (
        id TEXT PRIMARY KEY,
        url TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_news_sources_active ON news_sources(is_active);

    -- Deduplicated feed items; guid_hash is the dedup key
    CREATE TABLE IF NOT EXISTS news_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_id TEXT NOT NULL REFERENCES news_sources(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        summary TEXT,
        link TEXT NOT NULL,
        image_url TEXT,
        published_at INTEGER NOT NULL,
        guid_hash TEXT NOT NULL UNIQUE,
        created_at INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_news_items_source ON news_items(source_id, published_at);

    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        created_at INTEGER NOT NULL
    );

    -- Sources a user opted out of
    CREATE TABLE IF NOT EXISTS user_news_source_exclusions (
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        source_id TEXT NOT NULL REFERENCES news_sources(id) ON DELETE CASCADE,
        created_at INTEGER NOT NULL,
        PRIMARY KEY (user_id, source_id)
    );

    CREATE TABLE IF NOT EXISTS notifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT,
        metadata TEXT NOT NULL DEFAULT '{}',  -- JSON object
        created_at INTEGER NOT NULL
    );

    -- Index for retention cleanup
    CREATE INDEX IF NOT EXISTS idx_notifications_created ON notifications(created_at);
    CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at);
    """

    DEFAULT_SETTINGS = {
        KEY_FETCH_INTERVAL: DEFAULT_FETCH_INTERVAL_MINUTES,
        KEY_RETENTION_DAYS: DEFAULT_RETENTION_DAYS,
        KEY_LAST_FETCH_AT: None,
    }

    path: Path
    conn: sqlite3.Connection

    def __init__(self, path: Path | str):
        """Open (and if needed create) the database.

        Args:
            path: Path to SQLite database file, or ":memory:"
        """
        self.path = Path(path)
        self.conn = sqlite3.connect(str(path))
        self.conn.row_factory = sqlite3.Row  # Enable dict-like row access
        self.conn.execute("PRAGMA foreign_keys=ON")

        # WAL mode allows concurrent readers during writes
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()
        logger.debug("Database initialized | path=%s", self.path)

    def _init_schema(self) -> None:
        """Create tables and seed default settings rows."""
        self.conn.executescript(self.SCHEMA)
        now = int(time.time())
        self.conn.executemany(
            "INSERT INTO system_settings (key, value, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO NOTHING",
            [(key, json.dumps(value), now) for key, value in self.DEFAULT_SETTINGS.items()],
        )
        self.conn.commit()

    @contextmanager
    def _storage_op(self, operation: str):
        """Run a block in a transaction, wrapping sqlite errors.

        Commits on success and rolls back on any error.
        """
        try:
            with self.conn:
                yield self.conn
        except sqlite3.Error as e:
            raise StorageError(f"Failed to {operation}: {e}") from e

    # === Settings ===

    def get_settings_rows(self) -> dict[str, Any]:
        """Return all settings as {key: decoded JSON value}.

        Values that are not valid JSON are returned as raw strings.
        """
        with self._storage_op("fetch settings") as conn:
            rows = conn.execute("SELECT key, value FROM system_settings").fetchall()

        settings = {}
        for row in rows:
            try:
                settings[row["key"]] = json.loads(row["value"])
            except json.JSONDecodeError:
                settings[row["key"]] = row["value"]
        return settings

    def load_settings(self) -> FetcherSettings:
        """Load fetcher settings with defaults applied."""
        return FetcherSettings.from_rows(self.get_settings_rows())

    def set_setting(self, key: str, value: Any) -> None:
        """Upsert one setting (value is JSON-encoded)."""
        with self._storage_op(f"update {key}") as conn:
            conn.execute(
                """
                INSERT INTO system_settings (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), int(time.time())),
            )

    def set_last_fetch_at(self, when: datetime | None = None) -> None:
        """Record the completion time of a run."""
        when = when or datetime.now(timezone.utc)
        self.set_setting(KEY_LAST_FETCH_AT, when.isoformat())

    # === Sources ===

    def add_source(self, url: str, name: str, is_active: bool = True, source_id: str | None = None) -> FeedSource:
        """Insert a feed source and return it."""
        source = FeedSource(id=source_id or uuid.uuid4().hex, url=url, name=name, is_active=is_active)
        with self._storage_op("create source") as conn:
            conn.execute(
                "INSERT INTO news_sources (id, url, name, is_active, created_at) VALUES (?, ?, ?, ?, ?)",
                (source.id, source.url, source.name, int(source.is_active), int(time.time())),
            )
        return source

    def seed_sources(self, sources: Iterable[tuple[str, str]]) -> int:
        """Insert (name, url) pairs, skipping URLs already present.

        Returns:
            Number of sources inserted
        """
        now = int(time.time())
        inserted = 0
        with self._storage_op("seed sources") as conn:
            for name, url in sources:
                cursor = conn.execute(
                    "INSERT INTO news_sources (id, url, name, is_active, created_at) VALUES (?, ?, ?, 1, ?) "
                    "ON CONFLICT(url) DO NOTHING",
                    (uuid.uuid4().hex, url, name, now),
                )
                inserted += cursor.rowcount
        return inserted

    def set_source_active(self, source_id: str, is_active: bool) -> None:
        with self._storage_op("update source") as conn:
            conn.execute("UPDATE news_sources SET is_active = ? WHERE id = ?", (int(is_active), source_id))

    def active_sources(self) -> list[FeedSource]:
        """All sources with is_active set, oldest first."""
        with self._storage_op("fetch sources") as conn:
            rows = conn.execute(
                "SELECT id, url, name, is_active FROM news_sources WHERE is_active = 1 ORDER BY created_at, rowid"
            ).fetchall()
        return [
            FeedSource(id=row["id"], url=row["url"], name=row["name"], is_active=bool(row["is_active"]))
            for row in rows
        ]

    # === Users ===

    def add_user(self, user_id: str | None = None) -> str:
        user_id = user_id or uuid.uuid4().hex
        with self._storage_op("create user") as conn:
            conn.execute("INSERT INTO users (id, created_at) VALUES (?, ?)", (user_id, int(time.time())))
        return user_id

    def add_exclusion(self, user_id: str, source_id: str) -> None:
        """Opt a user out of notifications for a source."""
        with self._storage_op("create exclusion") as conn:
            conn.execute(
                "INSERT INTO user_news_source_exclusions (user_id, source_id, created_at) VALUES (?, ?, ?) "
                "ON CONFLICT(user_id, source_id) DO NOTHING",
                (user_id, source_id, int(time.time())),
            )

    def user_ids(self) -> list[str]:
        with self._storage_op("fetch users") as conn:
            rows = conn.execute("SELECT id FROM users ORDER BY created_at, rowid").fetchall()
        return [row["id"] for row in rows]

    def exclusion_pairs(self) -> list[tuple[str, str]]:
        """All (user_id, source_id) exclusion pairs."""
        with self._storage_op("fetch exclusions") as conn:
            rows = conn.execute("SELECT user_id, source_id FROM user_news_source_exclusions").fetchall()
        return [(row["user_id"], row["source_id"]) for row in rows]

    def users_with_exclusions(self) -> list[UserWithExclusions]:
        """Every user paired with the set of sources they excluded."""
        user_ids = self.user_ids()

        exclusion_map: dict[str, set[str]] = {}
        for user_id, source_id in self.exclusion_pairs():
            exclusion_map.setdefault(user_id, set()).add(source_id)

        return [
            UserWithExclusions(
                user_id=user_id,
                excluded_source_ids=frozenset(exclusion_map.get(user_id, ())),
            )
            for user_id in user_ids
        ]

    # === News items ===

    def existing_hashes(self, hashes: set[str]) -> set[str]:
        """Check which digests already exist in news_items.

        Args:
            hashes: Candidate guid hashes

        Returns:
            Subset of hashes already stored
        """
        if not hashes:
            return set()

        found = set()
        with self._storage_op("check existing items") as conn:
            for chunk in _chunks(sorted(hashes), MAX_QUERY_PARAMS):
                placeholders = ",".join("?" * len(chunk))
                cursor = conn.execute(
                    f"SELECT guid_hash FROM news_items WHERE guid_hash IN ({placeholders})",
                    chunk,
                )
                found.update(row["guid_hash"] for row in cursor.fetchall())
        return found

    def insert_items(self, items: list[NewsItem]) -> int:
        """Insert news items in a single transaction.

        Raises:
            StorageError: On any failure, including a duplicate guid_hash.
                Nothing from the batch is kept in that case.
        """
        if not items:
            return 0

        now = int(time.time())
        with self._storage_op("insert items") as conn:
            conn.executemany(
                """
                INSERT INTO news_items
                (source_id, title, summary, link, image_url, published_at, guid_hash, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        item.source_id,
                        item.title,
                        item.summary,
                        item.link,
                        item.image_url,
                        _epoch(item.published_at),
                        item.guid_hash,
                        now,
                    )
                    for item in items
                ],
            )
        logger.debug("Items inserted | count=%d", len(items))
        return len(items)

    def count_items(self, source_id: str | None = None) -> int:
        if source_id is None:
            row = self.conn.execute("SELECT COUNT(*) AS n FROM news_items").fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) AS n FROM news_items WHERE source_id = ?", (source_id,)
            ).fetchone()
        return row["n"]

    # === Notifications ===

    def insert_notifications(self, notifications: list[Notification], batch_size: int = 500) -> int:
        """Insert notifications in chunks inside one transaction.

        Args:
            notifications: Rows to insert
            batch_size: Rows per executemany call

        Returns:
            Number of rows inserted

        Raises:
            StorageError: On any failure (no rows are kept)
        """
        if not notifications:
            return 0

        with self._storage_op("create notifications") as conn:
            for chunk in _chunks(notifications, batch_size):
                conn.executemany(
                    """
                    INSERT INTO notifications (user_id, type, title, message, metadata, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            n.user_id,
                            n.type,
                            n.title,
                            n.message,
                            json.dumps(n.metadata, ensure_ascii=False),
                            _epoch(n.created_at),
                        )
                        for n in chunk
                    ],
                )
        return len(notifications)

    def delete_notifications_before(self, cutoff: datetime) -> int:
        """Delete notifications created strictly before cutoff.

        Returns:
            Number of rows deleted
        """
        with self._storage_op("cleanup notifications") as conn:
            cursor = conn.execute("DELETE FROM notifications WHERE created_at < ?", (_epoch(cutoff),))
        return cursor.rowcount

    def notifications_for(self, user_id: str) -> list[dict[str, Any]]:
        """A user's notifications, newest first, with metadata decoded."""
        cursor = self.conn.execute(
            """
            SELECT id, user_id, type, title, message, metadata, created_at
            FROM notifications WHERE user_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            (user_id,),
        )
        rows = []
        for row in cursor.fetchall():
            record = dict(row)
            record["metadata"] = json.loads(record["metadata"])
            rows.append(record)
        return rows

    # === Maintenance ===

    def stats(self) -> dict[str, int]:
        """Row counts for the status command."""
        row = self.conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM news_sources) AS sources,
                (SELECT COUNT(*) FROM news_sources WHERE is_active = 1) AS active_sources,
                (SELECT COUNT(*) FROM news_items) AS items,
                (SELECT COUNT(*) FROM users) AS users,
                (SELECT COUNT(*) FROM notifications) AS notifications
            """
        ).fetchone()
        return dict(row)

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> "Database":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
