"""Domain models."""
from src.models.media_item import (
    AddResult,
    EventSnapshot,
    MediaItem,
    MediaType,
    STORED_MEDIA_TYPES,
)
from src.models.time_range import CurrentView, TimeBucket, TimeRange
from src.models.feed_item import AuthorInfo, ClassifiedContent, FeedItem, RelayEvent

__all__ = [
    "AddResult",
    "EventSnapshot",
    "MediaItem",
    "MediaType",
    "STORED_MEDIA_TYPES",
    "CurrentView",
    "TimeBucket",
    "TimeRange",
    "AuthorInfo",
    "ClassifiedContent",
    "FeedItem",
    "RelayEvent",
]
