"""Media time machine - bounded, deduplicated, time-indexed media archive."""

import asyncio
from collections import deque
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Union

from src.config.settings import settings
from src.exceptions.media import InvalidMediaItemError
from src.models.media_item import (
    AddResult,
    COLLECTION_KEYS,
    MediaItem,
    MediaType,
    STORED_MEDIA_TYPES,
    parse_media_type,
)
from src.models.time_range import TimeBucket, TimeRange
from src.repositories.snapshot_repository import ArchiveSnapshot, SnapshotRepository
from src.services.base_service import BaseService
from src.utils.clock import now_ms
from src.utils.logger import logger


class MediaTimeMachine(BaseService):
    """
    Archive of media items, one bounded collection per media type.

    Each collection is kept newest-inserted-first. Insertion order is
    discovery order, not event time: range queries sort by timestamp
    explicitly. A seen-set mirrors the dedup keys of every stored item and
    is pruned on eviction, so evicted items are accepted again if they are
    observed later.

    All mutation is expected to happen on one event loop; there is no
    internal locking.
    """

    def __init__(
        self,
        repository: Optional[SnapshotRepository] = None,
        max_per_type: Optional[int] = None,
        save_delay_seconds: Optional[float] = None,
        clock: Callable[[], int] = now_ms,
    ):
        super().__init__()
        self.repository = repository
        self.max_per_type = max_per_type or settings.MAX_STORED_PER_TYPE
        self.save_delay_seconds = (
            settings.SNAPSHOT_SAVE_DELAY_SECONDS
            if save_delay_seconds is None
            else save_delay_seconds
        )
        self.clock = clock

        self._collections: dict[MediaType, deque] = {
            media_type: deque() for media_type in STORED_MEDIA_TYPES
        }
        self._seen_keys: set[str] = set()
        self._dirty = False
        self._pending_save: Optional[asyncio.TimerHandle] = None

    # ==================== Persistence ====================

    def load(self, triggered_by: str = "system") -> dict:
        """
        Replace the in-memory archive with the repository's snapshot.

        A missing or unreadable snapshot leaves an empty archive.

        Returns:
            Per-type counts after loading
        """
        if self.repository is None:
            return self.stats()

        with self.track_execution("load", triggered_by=triggered_by) as run:
            snapshot = self.repository.load_archive()
            dropped = self._rebuild(
                {media_type: snapshot.items(media_type) for media_type in STORED_MEDIA_TYPES}
            )
            run["duplicates_dropped"] = dropped
            if any(dropped.values()):
                logger.warning(
                    f"[MediaTimeMachine] Dropped {sum(dropped.values())} duplicate items "
                    f"while loading snapshot"
                )
                self._request_save()
            run["result"] = self.stats()
            return run["result"]

    def snapshot(self) -> ArchiveSnapshot:
        """Copy of the archive in snapshot form."""
        return ArchiveSnapshot(
            collections={
                media_type: list(collection)
                for media_type, collection in self._collections.items()
            }
        )

    def flush(self) -> bool:
        """Write the snapshot now if there are unsaved changes."""
        if self._pending_save is not None:
            self._pending_save.cancel()
            self._pending_save = None

        if self.repository is None or not self._dirty:
            return True

        saved = self.repository.save_archive(self.snapshot())
        if saved:
            self._dirty = False
        return saved

    def _request_save(self) -> None:
        """Mark the archive dirty and schedule a snapshot write.

        Writes are deferred by ``save_delay_seconds`` when an event loop is
        running; otherwise (or with a zero delay) they happen immediately.
        """
        if self.repository is None:
            return
        self._dirty = True

        if self.save_delay_seconds <= 0:
            self.flush()
            return

        if self._pending_save is not None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return

        self._pending_save = loop.call_later(self.save_delay_seconds, self._run_pending_save)

    def _run_pending_save(self) -> None:
        self._pending_save = None
        self.flush()

    # ==================== Writes ====================

    def add_item(self, item: Union[MediaItem, dict]) -> AddResult:
        """
        Add one item unless its (url, eventId) key is already stored.

        Args:
            item: MediaItem or a dict in the snapshot shape. Dicts without
                a timestamp get the current time.

        Returns:
            AddResult; ``added`` is False for duplicates (silent) and for
            malformed items (``error`` set)
        """
        try:
            if isinstance(item, dict):
                item = MediaItem.from_dict(item, default_timestamp=self.clock())
            elif not isinstance(item, MediaItem):
                raise InvalidMediaItemError(
                    f"Expected MediaItem or dict, got {type(item).__name__}"
                )
            item.validate()
            if not isinstance(item.type, MediaType):
                item = replace(item, type=parse_media_type(item.type))
        except InvalidMediaItemError as e:
            logger.info(f"[MediaTimeMachine] Rejected media item: {e}")
            return AddResult(added=False, error=str(e))

        key = item.dedup_key
        if key in self._seen_keys:
            logger.debug(
                f"[MediaTimeMachine] Skipping duplicate {item.type.value}: "
                f"{item.url[:50]} (event: {(item.event_id or '-')[:8]})"
            )
            return AddResult(added=False)

        collection = self._collections[item.type]
        collection.appendleft(item)
        self._seen_keys.add(key)

        evicted = 0
        while len(collection) > self.max_per_type:
            old = collection.pop()
            self._seen_keys.discard(old.dedup_key)
            evicted += 1

        if evicted:
            logger.debug(
                f"[MediaTimeMachine] Evicted {evicted} oldest {item.type.value} item(s)"
            )

        self._request_save()
        logger.debug(
            f"[MediaTimeMachine] Added {item.type.value}. "
            f"Total {COLLECTION_KEYS[item.type]}: {len(collection)}"
        )
        return AddResult(added=True, item=item)

    def dedupe(self, triggered_by: str = "system") -> dict:
        """
        Drop repeated (url, eventId) items, keeping the first occurrence.

        Idempotent. Rebuilds the seen-set from the surviving items.

        Returns:
            Number of items removed per media type value
        """
        with self.track_execution("dedupe", triggered_by=triggered_by) as run:
            removed_by_type = {}
            for media_type, collection in self._collections.items():
                before = len(collection)
                self._collections[media_type] = deque(self._first_occurrences(collection))
                removed_by_type[media_type.value] = before - len(self._collections[media_type])

            self._rebuild_seen_keys()

            for media_type in STORED_MEDIA_TYPES:
                removed = removed_by_type[media_type.value]
                logger.info(
                    f"[MediaTimeMachine] {COLLECTION_KEYS[media_type]}: "
                    f"removed {removed} duplicates, {len(self._collections[media_type])} remain"
                )

            if any(removed_by_type.values()):
                self._request_save()

            run["result"] = removed_by_type
            return removed_by_type

    def clear(self, triggered_by: str = "system") -> None:
        """Empty every collection and the seen-set."""
        with self.track_execution("clear", triggered_by=triggered_by):
            for collection in self._collections.values():
                collection.clear()
            self._seen_keys.clear()
            self._request_save()

    def _rebuild(self, collections: dict) -> dict:
        """Replace all collections (newest-first input), enforcing dedup and bounds.

        Returns:
            Duplicates dropped per media type value
        """
        removed = {}
        for media_type in STORED_MEDIA_TYPES:
            items = collections.get(media_type, [])
            unique = self._first_occurrences(items)
            removed[media_type.value] = len(items) - len(unique)
            self._collections[media_type] = deque(unique[: self.max_per_type])
        self._rebuild_seen_keys()
        return removed

    def _rebuild_seen_keys(self) -> None:
        self._seen_keys = {
            item.dedup_key
            for collection in self._collections.values()
            for item in collection
        }

    @staticmethod
    def _first_occurrences(items: Iterable[MediaItem]) -> list[MediaItem]:
        seen = set()
        unique = []
        for item in items:
            key = item.dedup_key
            if key in seen:
                continue
            seen.add(key)
            unique.append(item)
        return unique

    # ==================== Reads ====================

    def query_range(
        self, time_range: TimeRange, types: Optional[Iterable[MediaType]] = None
    ) -> list[MediaItem]:
        """
        Items of the given types with ``start <= timestamp <= end``.

        Args:
            time_range: Inclusive window in epoch ms
            types: Media types to include (default: all stored types)

        Returns:
            Matching items sorted newest-first by timestamp
        """
        types = STORED_MEDIA_TYPES if types is None else types
        matched: list[MediaItem] = []
        for media_type in dict.fromkeys(types):
            collection = self._collections.get(media_type)
            if collection is None:
                continue
            matched.extend(item for item in collection if time_range.contains(item.timestamp))
        return sorted(matched, key=lambda item: item.timestamp, reverse=True)

    def query_by_type(
        self, media_type: MediaType, time_range: Optional[TimeRange] = None
    ) -> list[MediaItem]:
        """One type's items; the whole collection (insertion order) when no range is given."""
        collection = self._collections.get(media_type)
        if collection is None:
            return []
        if time_range is None:
            return list(collection)
        return self.query_range(time_range, [media_type])

    def find_by_event_id(self, event_id: str) -> Optional[MediaItem]:
        """
        First item tied to ``event_id``.

        Scan order is image, video, audio, document, link; the first match
        wins when several types reference the same event.
        """
        for media_type in STORED_MEDIA_TYPES:
            for item in self._collections[media_type]:
                if item.event_id == event_id:
                    logger.debug(
                        f"[MediaTimeMachine] Found {media_type.value} for event {event_id[:8]}"
                    )
                    return item
        logger.debug(f"[MediaTimeMachine] Event {event_id[:8]} not found in archive")
        return None

    def find_by_author(self, pubkey: str) -> list[MediaItem]:
        """All archived items whose originating post was written by ``pubkey``, newest-first."""
        matched = [
            item
            for media_type in STORED_MEDIA_TYPES
            for item in self._collections[media_type]
            if item.author == pubkey
        ]
        return sorted(matched, key=lambda item: item.timestamp, reverse=True)

    def stats(self) -> dict:
        """Current collection size per media type."""
        return {
            media_type: len(self._collections[media_type])
            for media_type in STORED_MEDIA_TYPES
        }

    @property
    def total_count(self) -> int:
        return sum(len(collection) for collection in self._collections.values())

    def has_key(self, item: MediaItem) -> bool:
        return item.dedup_key in self._seen_keys

    @property
    def seen_key_count(self) -> int:
        return len(self._seen_keys)

    def time_span(self) -> Optional[tuple[int, int]]:
        """(oldest, newest) image timestamp, or None when there are no images."""
        images = self._collections[MediaType.IMAGE]
        if not images:
            return None
        timestamps = [item.timestamp for item in images]
        return min(timestamps), max(timestamps)

    # ==================== Histogram ====================

    def time_buckets(self, bucket_minutes: Optional[int] = None) -> list[TimeBucket]:
        """
        Image counts per fixed-size bucket, newest bucket first.

        Buckets are aligned to multiples of the bucket size and run from the
        oldest stored image through max(newest image, now), so the current
        time is always covered even when nothing recent was archived.
        """
        bucket_minutes = bucket_minutes or settings.HISTOGRAM_BUCKET_MINUTES
        bucket_ms = max(1, int(bucket_minutes)) * 60 * 1000
        now = self.clock()

        span = self.time_span()
        if span is None:
            return [
                TimeBucket(start=now - bucket_ms, end=now, count=0, label="No images yet")
            ]

        oldest, newest = span
        end_time = max(newest, now)
        timestamps = [item.timestamp for item in self._collections[MediaType.IMAGE]]

        buckets = []
        current_start = (oldest // bucket_ms) * bucket_ms
        while current_start <= end_time:
            current_end = current_start + bucket_ms
            count = sum(1 for ts in timestamps if current_start <= ts < current_end)
            bucket_end = min(current_end, end_time)
            buckets.append(
                TimeBucket(
                    start=current_start,
                    end=bucket_end,
                    count=count,
                    label=format_bucket_label(current_start, bucket_end, now),
                )
            )
            current_start = current_end

        buckets.reverse()
        return buckets


def format_bucket_label(start_ms: int, end_ms: int, now: int) -> str:
    """Human label for a bucket in local time: Today/Yesterday/date plus HH:MM range."""
    start = datetime.fromtimestamp(start_ms / 1000)
    end = datetime.fromtimestamp(end_ms / 1000)
    today = datetime.fromtimestamp(now / 1000).date()

    hours = f"{start:%H:%M} - {end:%H:%M}"
    if start.date() == today:
        return f"Today {hours}"
    if start.date() == today - timedelta(days=1):
        return f"Yesterday {hours}"
    return f"{start:%Y-%m-%d} {hours}"
