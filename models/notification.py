"""Notification models for the per-user fan-out."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

NOTIFICATION_TYPE_NEWS = "news"


class UserWithExclusions(BaseModel):
    """A user and the set of sources they opted out of."""

    user_id: str
    excluded_source_ids: frozenset[str] = Field(default_factory=frozenset)

    def excludes(self, source_id: str) -> bool:
        return source_id in self.excluded_source_ids


class Notification(BaseModel):
    """A notification row as stored in the notifications table."""

    user_id: str
    type: str = NOTIFICATION_TYPE_NEWS
    title: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
