"""Media item model - one discovered piece of media in the archive."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from src.config.constants import NO_EVENT_SENTINEL
from src.exceptions.media import InvalidMediaItemError


class MediaType(str, Enum):
    """Closed set of media types. TEXT is a placeholder that is never stored."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    LINK = "link"
    TEXT = "text"


# Fixed scan order for cross-type lookups (find by event id, find by author).
STORED_MEDIA_TYPES = (
    MediaType.IMAGE,
    MediaType.VIDEO,
    MediaType.AUDIO,
    MediaType.DOCUMENT,
    MediaType.LINK,
)

# Snapshot/API collection key for each stored type
COLLECTION_KEYS = {
    MediaType.IMAGE: "images",
    MediaType.VIDEO: "videos",
    MediaType.AUDIO: "audio",
    MediaType.DOCUMENT: "documents",
    MediaType.LINK: "links",
}


def parse_media_type(value: Any) -> MediaType:
    """Parse a stored media type, rejecting unknown values and TEXT."""
    try:
        media_type = MediaType(value)
    except ValueError:
        raise InvalidMediaItemError(f"Unknown media type: {value!r}", field="type")
    if media_type is MediaType.TEXT:
        raise InvalidMediaItemError("Text items are not stored", field="type")
    return media_type


@dataclass(frozen=True)
class EventSnapshot:
    """Immutable copy of the originating post, captured at ingestion time.

    Attributes:
        id: Nostr event id
        author: Author public key (hex)
        content: Raw post text
        created_at: Event creation time in seconds since epoch
    """

    id: str
    author: str
    content: str
    created_at: int

    def to_dict(self) -> dict:
        """Serialize using the snapshot file's key names."""
        return {
            "id": self.id,
            "pubkey": self.author,
            "content": self.content,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EventSnapshot":
        """Build from a stored dict; accepts both pubkey/author and created_at/createdAt.

        Raises:
            InvalidMediaItemError: If data is not a mapping or created_at is not numeric
        """
        if not isinstance(data, dict):
            raise InvalidMediaItemError(
                f"Event data must be a mapping, got {type(data).__name__}", field="eventData"
            )
        created_at = data.get("created_at") or data.get("createdAt") or 0
        try:
            created_at = int(created_at)
        except (TypeError, ValueError, OverflowError):
            raise InvalidMediaItemError(
                f"Invalid event created_at: {created_at!r}", field="eventData"
            )
        return cls(
            id=str(data.get("id") or ""),
            author=str(data.get("pubkey") or data.get("author") or ""),
            content=str(data.get("content") or ""),
            created_at=created_at,
        )


@dataclass(frozen=True)
class MediaItem:
    """
    One discovered piece of media.

    Never mutated after creation. ``timestamp`` is the originating event's
    creation time in milliseconds, not the discovery time.
    """

    url: str
    timestamp: int
    type: MediaType
    subtype: Optional[str] = None
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    category: Optional[str] = None
    event_id: Optional[str] = None
    event_data: Optional[EventSnapshot] = field(default=None, compare=False)

    @property
    def dedup_key(self) -> str:
        """Uniqueness key within a type's collection: url + ':' + eventId."""
        return f"{self.url}:{self.event_id or NO_EVENT_SENTINEL}"

    @property
    def author(self) -> Optional[str]:
        return self.event_data.author if self.event_data else None

    def validate(self) -> None:
        """Raise InvalidMediaItemError if the item cannot be archived."""
        if not isinstance(self.url, str) or not self.url:
            raise InvalidMediaItemError("Media item has no url", field="url")
        parse_media_type(self.type)
        if not isinstance(self.timestamp, int) or isinstance(self.timestamp, bool):
            raise InvalidMediaItemError(
                f"Timestamp must be integer milliseconds, got {self.timestamp!r}",
                field="timestamp",
            )

    def with_timestamp(self, timestamp: int) -> "MediaItem":
        return replace(self, timestamp=timestamp)

    def to_dict(self) -> dict:
        """Serialize to the snapshot/API shape, omitting unset optional fields."""
        data = {
            "url": self.url,
            "timestamp": self.timestamp,
            "type": self.type.value,
        }
        optional = {
            "subtype": self.subtype,
            "title": self.title,
            "thumbnail": self.thumbnail,
            "category": self.category,
            "eventId": self.event_id,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.event_data is not None:
            data["eventData"] = self.event_data.to_dict()
        return data

    @classmethod
    def from_dict(
        cls,
        data: dict,
        default_type: Optional[MediaType] = None,
        default_timestamp: Optional[int] = None,
    ) -> "MediaItem":
        """
        Build a MediaItem from a snapshot/API dict.

        Args:
            data: Dict in the snapshot shape (camelCase keys)
            default_type: Type to use when the dict has none (e.g. the
                collection it was loaded from)
            default_timestamp: Timestamp to use when the dict has none

        Raises:
            InvalidMediaItemError: If url is missing, the type is unknown,
                or no timestamp can be determined
        """
        if not isinstance(data, dict):
            raise InvalidMediaItemError(f"Expected a mapping, got {type(data).__name__}")

        url = data.get("url")
        if not isinstance(url, str) or not url:
            raise InvalidMediaItemError("Media item has no url", field="url")

        raw_type = data.get("type") or default_type
        if raw_type is None:
            raise InvalidMediaItemError("Media item has no type", field="type")
        media_type = parse_media_type(raw_type)

        timestamp = data.get("timestamp", default_timestamp)
        if timestamp is None:
            raise InvalidMediaItemError("Media item has no timestamp", field="timestamp")
        try:
            timestamp = int(timestamp)
        except (TypeError, ValueError, OverflowError):
            raise InvalidMediaItemError(
                f"Invalid timestamp: {timestamp!r}", field="timestamp"
            )

        event_data = data.get("eventData")
        return cls(
            url=url,
            timestamp=timestamp,
            type=media_type,
            subtype=data.get("subtype"),
            title=data.get("title"),
            thumbnail=data.get("thumbnail"),
            category=data.get("category"),
            event_id=data.get("eventId"),
            event_data=EventSnapshot.from_dict(event_data)
            if isinstance(event_data, dict)
            else None,
        )


@dataclass
class AddResult:
    """Outcome of adding an item to the archive.

    Attributes:
        added: True if the item was stored, False for duplicates and rejects
        error: Rejection reason for malformed items, None otherwise
        item: The stored item (with its resolved timestamp) when added
    """

    added: bool
    error: Optional[str] = None
    item: Optional[MediaItem] = None

    @property
    def rejected(self) -> bool:
        return self.error is not None
