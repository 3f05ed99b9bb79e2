"""Feed data models: sources, parsed items, and persisted news items.

Deduplication Strategy:
    Items are deduplicated by a SHA-256 digest of their GUID. The GUID is
    whatever identifier the feed provides (RSS <guid>, Atom <id>) or, when a
    feed has none, a synthesized ``"{source_url}#{title}"`` fallback.

    The digest is computed over the UTF-8 bytes of the GUID and hex-encoded,
    so it matches digests already stored by other implementations of the
    same pipeline. Changing the encoding or the hash would re-surface every
    previously stored item as "new".
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from hashlib import sha256

from pydantic import BaseModel, Field


def hash_guid(guid: str) -> str:
    """Return the 64-char lowercase hex SHA-256 digest of a GUID.

    Example:
        >>> hash_guid("abc")
        'ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad'
    """
    return sha256(guid.encode("utf-8")).hexdigest()


def synthesize_guid(source_url: str, title: str) -> str:
    """Build the fallback GUID for items that carry no identifier."""
    return f"{source_url}#{title}"


class FeedSource(BaseModel):
    """A configured feed endpoint polled by the fetcher."""

    id: str = Field(description="Opaque source identifier")
    url: str = Field(description="Feed URL")
    name: str = Field(description="Display name used in notifications")
    is_active: bool = Field(default=True, description="Inactive sources are never fetched")


class RawFeedItem(BaseModel):
    """A normalized item extracted from an RSS item or Atom entry.

    Attributes:
        title: Entity-decoded headline (never empty)
        link: Article URL (never empty)
        guid: Feed-provided identifier or synthesized fallback
        summary: Plain-text summary, at most 500 chars plus "..."
        image_url: Best-effort image URL
        published_at: Publication time (UTC); "now" when the feed has none
    """

    title: str
    link: str
    guid: str
    summary: str | None = None
    image_url: str | None = None
    published_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def guid_hash(self) -> str:
        """Dedup key for this item (see hash_guid)."""
        return hash_guid(self.guid)

    def __str__(self) -> str:
        """Human-readable representation for logging."""
        return f"RawFeedItem({self.guid_hash[:8]}..., '{self.title[:50]}')"


class NewsItem(BaseModel):
    """A deduplicated item as stored in the news_items table."""

    source_id: str
    title: str
    link: str
    guid_hash: str
    summary: str | None = None
    image_url: str | None = None
    published_at: datetime

    @classmethod
    def from_raw(cls, source_id: str, item: RawFeedItem) -> "NewsItem":
        """Build a storable row from a parsed feed item."""
        return cls(
            source_id=source_id,
            title=item.title,
            link=item.link,
            guid_hash=item.guid_hash,
            summary=item.summary,
            image_url=item.image_url,
            published_at=item.published_at,
        )


@dataclass
class ParseResult:
    """Output of the feed parser: items in document order, or an error."""
    items: list[RawFeedItem] = field(default_factory=list)
    error: str | None = None
