"""Data models for the news fetcher.

FeedSource:
    A configured feed endpoint (id, url, name, is_active).

RawFeedItem:
    Normalized item produced by the feed parser. Its guid_hash property is
    the dedup key.

NewsItem:
    A deduplicated item as persisted.

FetcherSettings:
    Interval/retention/last-fetch settings with defaults.

Notification, UserWithExclusions:
    Fan-out inputs and outputs.

FetchSourceResult, FetchNewsResult:
    Per-source and per-run results.

Example:
    >>> from models import RawFeedItem, hash_guid
    >>> item = RawFeedItem(title="...", link="https://...", guid="guid-123")
    >>> item.guid_hash == hash_guid("guid-123")
    True
"""

from models.feed import FeedSource, NewsItem, ParseResult, RawFeedItem, hash_guid, synthesize_guid
from models.notification import Notification, UserWithExclusions
from models.results import FetchNewsResult, FetchSourceResult
from models.settings import FetcherSettings

__all__ = [
    "FeedSource",
    "RawFeedItem",
    "NewsItem",
    "ParseResult",
    "hash_guid",
    "synthesize_guid",
    "FetcherSettings",
    "Notification",
    "UserWithExclusions",
    "FetchSourceResult",
    "FetchNewsResult",
]
