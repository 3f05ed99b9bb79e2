"""Hash-based dedup and insert of parsed feed items.

Each item's dedup key is the SHA-256 digest of its GUID. For one source's
batch we compute every digest, ask the store which ones it already has in a
single query, and insert only the unseen remainder in a single batch.

Storage failures are not caught here: an insert failure means the store is
broken, not the feed, so it propagates and aborts the run.
"""

import logging

from database import Database
from models.feed import NewsItem, RawFeedItem

logger = logging.getLogger(__name__)


def upsert_items(db: Database, source_id: str, items: list[RawFeedItem]) -> int:
    """Persist the items of one source that are not stored yet.

    Items repeating a GUID within the same batch are inserted once (first
    occurrence wins), so a batch never collides with itself.

    Args:
        db: Store handle
        source_id: Source the items came from
        items: Parsed items in document order

    Returns:
        Number of newly inserted items

    Raises:
        StorageError: If the existence check or the insert fails
    """
    if not items:
        return 0

    hashed = [(item.guid_hash, item) for item in items]
    existing = db.existing_hashes({digest for digest, _ in hashed})

    new_items: list[NewsItem] = []
    batch_hashes: set[str] = set()
    for digest, item in hashed:
        if digest in existing or digest in batch_hashes:
            continue
        batch_hashes.add(digest)
        new_items.append(NewsItem.from_raw(source_id, item))

    if not new_items:
        logger.debug("No new items | source_id=%s parsed=%d", source_id, len(items))
        return 0

    inserted = db.insert_items(new_items)
    logger.debug(
        "Items upserted | source_id=%s parsed=%d new=%d",
        source_id, len(items), inserted,
    )
    return inserted
