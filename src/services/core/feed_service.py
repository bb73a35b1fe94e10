"""Feed service - query facade over the archive, navigator and pipeline."""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from src.exceptions import InvalidMediaItemError
from src.models.feed_item import ClassifiedContent, FeedItem, RelayEvent
from src.models.media_item import MediaItem, MediaType, STORED_MEDIA_TYPES
from src.models.time_range import TimeBucket, TimeRange, parse_media_types
from src.services.base_service import BaseService
from src.services.core.feed_pipeline import FeedPipeline
from src.services.core.time_machine import MediaTimeMachine
from src.services.core.time_navigation import TimeNavigator
from src.utils.clock import parse_timestamp
from src.utils.logger import logger

TIME_TRAVEL_ACTIONS = ("backwards", "forwards", "now", "goto", "set-window")


@dataclass
class TimeTravelCommand:
    """
    Client time-travel request.

    Attributes:
        action: One of TIME_TRAVEL_ACTIONS
        minutes: Offset for backwards/forwards
        timestamp: Target for goto (epoch ms or a date string)
        span_minutes: Window span for goto (default: the time slice)
        start: Window start for set-window (epoch ms)
        end: Window end for set-window (epoch ms)
    """

    action: str
    minutes: Optional[int] = None
    timestamp: Any = None
    span_minutes: Optional[int] = None
    start: Optional[int] = None
    end: Optional[int] = None


@dataclass
class TimeTravelResult:
    success: bool
    count: int = 0
    time_range: Optional[TimeRange] = None
    user_controlled: bool = False
    items: list = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "success": self.success,
            "count": self.count,
            "time_range": self.time_range.to_dict() if self.time_range else None,
            "user_controlled": self.user_controlled,
        }
        if self.error:
            data["error"] = self.error
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class FeedService(BaseService):
    """
    Operations the delivery layer needs, composed from the services.

    Query errors (unknown ids, inverted ranges, bad time-travel input)
    come back as None, empty lists or ``success=False``; nothing here
    raises to the caller.
    """

    def __init__(
        self,
        store: MediaTimeMachine,
        navigator: TimeNavigator,
        pipeline: FeedPipeline,
    ):
        super().__init__()
        self.store = store
        self.navigator = navigator
        self.pipeline = pipeline

    # ==================== Feed ====================

    async def get_feed_items(self, limit: Optional[int] = None) -> list[FeedItem]:
        return await self.pipeline.get_feed_items(limit)

    def subscribe(self, callback: Callable[[FeedItem], None]) -> Callable[[], None]:
        return self.pipeline.subscribe(callback)

    async def find_post(self, event_id: str) -> Optional[FeedItem]:
        """
        Reconstruct a post by id.

        Looks in the pipeline's event buffer first, then falls back to the
        event snapshot stored with archived media.
        """
        event = self.pipeline.get_event(event_id)
        if event is not None:
            return await self.pipeline.build_feed_item(event)

        item = self.store.find_by_event_id(event_id)
        if item is None:
            logger.info(f"[FeedService] Post {event_id[:8]} not found")
            return None

        if item.event_data is not None:
            snapshot = item.event_data
            event = RelayEvent(
                id=snapshot.id or event_id,
                pubkey=snapshot.author,
                content=snapshot.content,
                created_at=snapshot.created_at,
            )
            return await self.pipeline.build_feed_item(event)

        # Archived without a snapshot: all we know is the one item
        media = ClassifiedContent()
        media.items_for(item.type).append(item)
        return FeedItem(
            id=event_id,
            author="",
            content="",
            created_at=item.timestamp // 1000,
            media=media,
        )

    def find_media_by_author(self, pubkey: str) -> list[MediaItem]:
        return self.store.find_by_author(pubkey)

    # ==================== Time machine ====================

    def time_travel(self, command: TimeTravelCommand) -> TimeTravelResult:
        """
        Apply a time-travel command to the current view.

        Returns:
            TimeTravelResult; ``success=False`` with ``error`` set for an
            unknown action or missing/invalid parameters
        """
        try:
            items = self._apply(command)
        except ValueError as e:
            logger.info(f"[FeedService] Rejected time travel {command.action!r}: {e}")
            return TimeTravelResult(
                success=False,
                time_range=self.navigator.current_range,
                user_controlled=self.navigator.user_controlled,
                error=str(e),
            )

        return TimeTravelResult(
            success=True,
            count=len(items),
            time_range=self.navigator.current_range,
            user_controlled=self.navigator.user_controlled,
            items=items,
        )

    def _apply(self, command: TimeTravelCommand) -> list[MediaItem]:
        action = command.action

        if action == "now":
            return self.navigator.jump_to_now()

        if action in ("backwards", "forwards"):
            if command.minutes is None or int(command.minutes) <= 0:
                raise ValueError("minutes must be a positive number")
            minutes = int(command.minutes)
            if action == "backwards":
                return self.navigator.travel_backwards(minutes)
            return self.navigator.travel_forwards(minutes)

        if action == "goto":
            if command.timestamp is None:
                raise ValueError("timestamp is required")
            if command.span_minutes is not None and int(command.span_minutes) <= 0:
                raise ValueError("span_minutes must be positive")
            timestamp = parse_timestamp(command.timestamp)
            return self.navigator.travel_to_timestamp(timestamp, command.span_minutes)

        if action == "set-window":
            if command.start is None or command.end is None:
                raise ValueError("start and end are required")
            start, end = int(command.start), int(command.end)
            if start > end:
                raise ValueError("start must not be after end")
            return self.navigator.travel_to_range(TimeRange(start=start, end=end))

        raise ValueError(f"unknown action, expected one of {', '.join(TIME_TRAVEL_ACTIONS)}")

    def get_media_for_range(
        self, start: int, end: int, types: Optional[Iterable[MediaType]] = None
    ) -> list[MediaItem]:
        """Range query without moving the current view. An inverted range is empty."""
        if start > end:
            return []
        return self.store.query_range(TimeRange(start=start, end=end), types)

    def get_current_media(self) -> list[MediaItem]:
        return self.navigator.get_current_media()

    def set_active_types(self, types: Iterable[Any]) -> Optional[list[MediaItem]]:
        """Set the active type filter from type names. Returns None if any name is invalid."""
        try:
            parsed = parse_media_types(types)
        except InvalidMediaItemError as e:
            logger.info(f"[FeedService] Rejected media type selection: {e}")
            return None
        return self.navigator.set_active_types(parsed)

    def periods(self, bucket_minutes: Optional[int] = None) -> list[TimeBucket]:
        return self.navigator.histogram(bucket_minutes)

    def stats(self) -> dict:
        counts = self.store.stats()
        span = self.store.time_span()
        view = self.navigator.current_view
        return {
            "counts": {media_type.value: counts[media_type] for media_type in STORED_MEDIA_TYPES},
            "total": self.store.total_count,
            "time_span": {"oldest": span[0], "newest": span[1]} if span else None,
            "current_view": view.to_dict(),
        }

    def dedupe(self, triggered_by: str = "api") -> dict:
        return self.store.dedupe(triggered_by=triggered_by)
