"""Feed models - relay events, author info and feed items for delivery."""

from dataclasses import dataclass, field
from typing import Any, Optional

from src.models.media_item import COLLECTION_KEYS, EventSnapshot, MediaItem, MediaType


@dataclass(frozen=True)
class RelayEvent:
    """
    Minimal view of an upstream Nostr event.

    Only the fields the core consumes are kept; tags and signatures are
    dropped at the relay boundary.
    """

    id: str
    pubkey: str
    content: str
    created_at: int
    kind: int = 1

    @classmethod
    def from_wire(cls, data: Any) -> Optional["RelayEvent"]:
        """Parse a relay ``EVENT`` payload, returning None when malformed."""
        if not isinstance(data, dict):
            return None
        event_id = data.get("id")
        pubkey = data.get("pubkey")
        content = data.get("content")
        created_at = data.get("created_at")
        if not isinstance(event_id, str) or not event_id:
            return None
        if not isinstance(pubkey, str) or not pubkey:
            return None
        if not isinstance(content, str):
            return None
        if not isinstance(created_at, int) or isinstance(created_at, bool):
            return None
        kind = data.get("kind", 1)
        return cls(
            id=event_id,
            pubkey=pubkey,
            content=content,
            created_at=created_at,
            kind=kind if isinstance(kind, int) else 1,
        )

    def snapshot(self) -> EventSnapshot:
        return EventSnapshot(
            id=self.id,
            author=self.pubkey,
            content=self.content,
            created_at=self.created_at,
        )

    @property
    def timestamp_ms(self) -> int:
        return self.created_at * 1000


@dataclass(frozen=True)
class AuthorInfo:
    """Display profile of a post author (kind-0 metadata)."""

    name: Optional[str] = None
    picture: Optional[str] = None

    def to_dict(self) -> dict:
        return {"name": self.name, "picture": self.picture}


@dataclass
class ClassifiedContent:
    """
    Media extracted from one post, one list per type.

    Items produced by the classifier carry no timestamp or event binding
    yet (timestamp 0); the pipeline binds them to the originating event.
    """

    images: list[MediaItem] = field(default_factory=list)
    videos: list[MediaItem] = field(default_factory=list)
    audio: list[MediaItem] = field(default_factory=list)
    documents: list[MediaItem] = field(default_factory=list)
    links: list[MediaItem] = field(default_factory=list)
    text_content: str = ""

    @property
    def total_count(self) -> int:
        return (
            len(self.images)
            + len(self.videos)
            + len(self.audio)
            + len(self.documents)
            + len(self.links)
        )

    def items_for(self, media_type: MediaType) -> list[MediaItem]:
        return getattr(self, COLLECTION_KEYS[media_type])

    def all_items(self) -> list[MediaItem]:
        return self.images + self.videos + self.audio + self.documents + self.links

    def to_dict(self) -> dict:
        return {
            "images": [item.to_dict() for item in self.images],
            "videos": [item.to_dict() for item in self.videos],
            "audio": [item.to_dict() for item in self.audio],
            "documents": [item.to_dict() for item in self.documents],
            "links": [item.to_dict() for item in self.links],
            "totalCount": self.total_count,
        }


@dataclass
class FeedItem:
    """One post with its classified media, as delivered to clients."""

    id: str
    author: str
    content: str
    created_at: int
    media: ClassifiedContent
    profile: Optional[AuthorInfo] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author": self.author,
            "content": self.content,
            "createdAt": self.created_at,
            "media": self.media.to_dict(),
            "profile": self.profile.to_dict() if self.profile else None,
        }
