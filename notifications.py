"""Per-user notification fan-out and retention cleanup.

Fan-out:
    After all sources are processed, every user gets one notification per
    productive source (new items and no error) that they have not excluded.
    The work is O(users x productive sources); the rows are inserted in
    chunks inside one transaction.

Retention:
    Notifications older than the configured retention window are deleted on
    every run, whether or not any new items were found.

Both stages raise StorageError on write failures; the orchestrator treats
that as fatal for the run.
"""

import logging
from datetime import datetime, timedelta, timezone

from database import Database
from models.notification import NOTIFICATION_TYPE_NEWS, Notification, UserWithExclusions
from models.results import FetchSourceResult

logger = logging.getLogger(__name__)


def notification_title(count: int, source_name: str) -> str:
    """Title such as "1 new item from Feed1" or "3 new items from Feed1"."""
    noun = "item" if count == 1 else "items"
    return f"{count} new {noun} from {source_name}"


def notification_message(source_name: str) -> str:
    return f"Check out the latest updates from {source_name}"


def build_notifications(
    results: list[FetchSourceResult],
    users: list[UserWithExclusions],
) -> list[Notification]:
    """Build one notification per (user, productive source) pair.

    Sources excluded by a user are skipped for that user only.

    Args:
        results: Per-source results of the current run
        users: All users with their exclusion sets

    Returns:
        Notifications in user-major, source-order order
    """
    productive = [r for r in results if r.is_productive]
    if not productive or not users:
        return []

    notifications = []
    for user in users:
        for source in productive:
            if user.excludes(source.source_id):
                continue
            notifications.append(Notification(
                user_id=user.user_id,
                type=NOTIFICATION_TYPE_NEWS,
                title=notification_title(source.new_items_count, source.source_name),
                message=notification_message(source.source_name),
                metadata={
                    "type": NOTIFICATION_TYPE_NEWS,
                    "sourceId": source.source_id,
                    "sourceName": source.source_name,
                    "itemCount": source.new_items_count,
                },
            ))
    return notifications


def fan_out(
    db: Database,
    results: list[FetchSourceResult],
    users: list[UserWithExclusions],
    batch_size: int = 500,
) -> int:
    """Create notifications for this run's productive sources.

    Args:
        db: Store handle
        results: Per-source results of the current run
        users: All users with their exclusion sets
        batch_size: Rows per insert chunk

    Returns:
        Number of notifications created (0 without any write when there is
        nothing to send)

    Raises:
        StorageError: If the batch insert fails
    """
    notifications = build_notifications(results, users)
    if not notifications:
        return 0

    created = db.insert_notifications(notifications, batch_size=batch_size)
    logger.info("Notifications created | count=%d users=%d", created, len(users))
    return created


def cleanup_notifications(
    db: Database,
    retention_days: float,
    now: datetime | None = None,
) -> int:
    """Delete notifications older than the retention window.

    Args:
        db: Store handle
        retention_days: Age in days beyond which notifications are removed
        now: Reference time (defaults to the current UTC time)

    Returns:
        Number of notifications deleted

    Raises:
        StorageError: If the delete fails
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=retention_days)
    deleted = db.delete_notifications_before(cutoff)
    if deleted > 0:
        logger.info("Notifications pruned | deleted=%d days=%s", deleted, retention_days)
    return deleted
