"""Per-source and per-run result containers."""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class FetchSourceResult:
    """Outcome of fetching one source.

    Attributes:
        source_id: Source identifier
        source_name: Source display name
        new_items_count: Items inserted for this source (0 on error)
        error: Human-readable failure, None on success
    """

    source_id: str
    source_name: str
    new_items_count: int = 0
    error: str | None = None

    @property
    def is_productive(self) -> bool:
        """True when the source yielded new items without error."""
        return self.error is None and self.new_items_count > 0


@dataclass
class FetchNewsResult:
    """Summary of one pipeline run, returned to the scheduler.

    Attributes:
        success: True when no errors were recorded
        sources_processed: Active sources attempted
        total_new_items: Items inserted across all sources
        notifications_created: Notification rows inserted
        notifications_deleted: Notification rows removed by retention
        errors: Ordered human-readable errors
        duration_ms: Wall time of the run in milliseconds
    """

    success: bool = True
    sources_processed: int = 0
    total_new_items: int = 0
    notifications_created: int = 0
    notifications_deleted: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @classmethod
    def failure(cls, message: str, duration_ms: int) -> "FetchNewsResult":
        """Result for a run aborted by a fatal error."""
        return cls(success=False, errors=[message], duration_ms=duration_ms)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)
