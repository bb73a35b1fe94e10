"""Feed pipeline - live relay ingestion into the media archive."""

import asyncio
import json
from collections import deque
from dataclasses import replace
from enum import Enum
from typing import Callable, Optional

from src.config.constants import KIND_METADATA, KIND_TEXT_NOTE
from src.config.settings import settings
from src.exceptions import RelayError
from src.models.feed_item import AuthorInfo, ClassifiedContent, FeedItem, RelayEvent
from src.models.media_item import MediaType, STORED_MEDIA_TYPES
from src.services.base_service import BaseService
from src.services.core.media_classifier import ImageCategorizer, MediaClassifier
from src.services.core.time_machine import MediaTimeMachine
from src.services.integrations.relay_pool import RelayPool, RelaySubscription
from src.utils.clock import now_ms
from src.utils.logger import logger
from src.utils.observers import ObserverList


class PipelineState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class FeedPipeline(BaseService):
    """
    Turns the live relay stream into archive writes and feed notifications.

    Lifecycle:
        IDLE -> CONNECTING (initialize) -> ACTIVE (bulk fetch done, live
        subscription open) -> RECONNECTING (fetch failed with retries left,
        or subscription dropped) -> ACTIVE | FAILED (retry budget spent).

    Nothing raised by the relay pool escapes this class: timeouts and
    connection failures are logged and turned into retries.

    Usage:
        pipeline = FeedPipeline(pool, store)
        unsubscribe = pipeline.subscribe(on_feed_item)
        await pipeline.initialize()
        ...
        await pipeline.close()
    """

    def __init__(
        self,
        pool: RelayPool,
        store: MediaTimeMachine,
        categorizer: Optional[ImageCategorizer] = None,
        clock: Callable[[], int] = now_ms,
    ):
        super().__init__()
        self.pool = pool
        self.store = store
        self.categorizer = categorizer or ImageCategorizer()
        self.clock = clock

        # Tunables, read once so tests can override them per instance
        self.bulk_lookback_seconds = settings.BULK_FETCH_LOOKBACK_SECONDS
        self.bulk_limit = settings.BULK_FETCH_LIMIT
        self.bulk_timeout = settings.BULK_FETCH_TIMEOUT_SECONDS
        self.max_retries = settings.MAX_INIT_RETRIES
        self.retry_base_delay = settings.INIT_RETRY_BASE_DELAY_SECONDS
        self.retry_max_delay = settings.INIT_RETRY_MAX_DELAY_SECONDS
        self.reconnect_delay = settings.RECONNECT_DELAY_SECONDS
        self.health_check_interval = settings.HEALTH_CHECK_INTERVAL_SECONDS
        self.stale_threshold = settings.STALE_THRESHOLD_SECONDS
        self.health_log_interval = settings.HEALTH_LOG_INTERVAL_SECONDS
        self.profile_timeout = settings.PROFILE_LOOKUP_TIMEOUT_SECONDS
        self.max_seen_event_ids = settings.MAX_SEEN_EVENT_IDS
        self.profile_cache_size = settings.PROFILE_CACHE_SIZE

        self.state = PipelineState.IDLE
        self.retries = 0
        self.last_activity = self.clock()
        self.observers = ObserverList("feed-item")

        self._events: deque = deque(maxlen=settings.MAX_EVENT_BUFFER)
        self._seen_event_ids: dict[str, None] = {}
        self._profiles: dict[str, AuthorInfo] = {}
        self._subscription: Optional[RelaySubscription] = None

        self._retry_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._notify_tasks: set[asyncio.Task] = set()
        self._closed = False

    # ==================== Lifecycle ====================

    async def initialize(self, _retry: bool = False) -> bool:
        """
        Bulk-fetch recent posts, then open the live subscription.

        A call while CONNECTING or ACTIVE is a no-op. An external call
        cancels any pending automatic retry; calling again after FAILED
        starts over with a fresh retry budget.

        Returns:
            True if the pipeline is now ACTIVE
        """
        if self._closed:
            logger.info("[FeedPipeline] Pipeline closed, not initializing")
            return False

        if self.state in (PipelineState.CONNECTING, PipelineState.ACTIVE):
            logger.info(f"[FeedPipeline] Already {self.state.value}, skipping initialize")
            return False

        if not _retry:
            self._cancel_task(self._retry_task)
            self._retry_task = None
            if self.state is PipelineState.FAILED:
                self.retries = 0

        self.state = PipelineState.CONNECTING
        logger.info(
            f"[FeedPipeline] Initializing (attempt {self.retries + 1}/{self.max_retries})"
        )

        filters = {
            "kinds": [KIND_TEXT_NOTE],
            "limit": self.bulk_limit,
            "since": self.clock() // 1000 - self.bulk_lookback_seconds,
        }
        try:
            events = await asyncio.wait_for(self.pool.query(filters), timeout=self.bulk_timeout)
        except asyncio.TimeoutError:
            self._handle_init_failure(f"bulk fetch timed out after {self.bulk_timeout}s")
            return False
        except RelayError as e:
            self._handle_init_failure(str(e))
            return False

        if self._closed:
            return False

        loaded = self._load_recent(events)
        logger.info(
            f"[FeedPipeline] Loaded {loaded} unique recent events "
            f"({self.store.total_count} media items archived)"
        )

        self.retries = 0
        self.last_activity = self.clock()
        self._start_subscription()
        self._start_health_monitor()
        return self.state is PipelineState.ACTIVE

    def _handle_init_failure(self, reason: str) -> None:
        self.retries += 1

        if self.retries >= self.max_retries:
            self.state = PipelineState.FAILED
            logger.error(
                f"[FeedPipeline] Initialization failed ({reason}); "
                f"giving up after {self.retries} attempts"
            )
            return

        delay = self.retry_delay(self.retries)
        self.state = PipelineState.RECONNECTING
        logger.warning(
            f"[FeedPipeline] Initialization failed ({reason}); "
            f"retrying in {delay:.0f}s (attempt {self.retries}/{self.max_retries})"
        )
        self._retry_task = asyncio.create_task(self._retry_initialize(delay))

    def retry_delay(self, retries: int) -> float:
        """Exponential backoff: base * 2^(retries-1), capped."""
        return min(self.retry_base_delay * 2 ** max(retries - 1, 0), self.retry_max_delay)

    async def _retry_initialize(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._retry_task = None
        await self.initialize(_retry=True)

    def _load_recent(self, events: list[RelayEvent]) -> int:
        """Buffer and archive bulk-fetched events (oldest first, so the buffer ends newest-first)."""
        loaded = 0
        for event in sorted(events, key=lambda e: e.created_at):
            if self.ingest(event) is not None:
                loaded += 1
        return loaded

    # ==================== Live subscription ====================

    def _start_subscription(self) -> None:
        if self._closed:
            return

        filters = {"kinds": [KIND_TEXT_NOTE], "since": self.clock() // 1000}
        subscription: Optional[RelaySubscription] = None

        def on_close(reason: str) -> None:
            self._on_subscription_closed(subscription, reason)

        try:
            subscription = self.pool.subscribe(
                filters,
                on_event=self.handle_event,
                on_eose=lambda: logger.info("[FeedPipeline] Live subscription established"),
                on_close=on_close,
            )
        except RelayError as e:
            logger.warning(f"[FeedPipeline] Could not open subscription: {e}")
            self.state = PipelineState.RECONNECTING
            self._schedule_reconnect()
            return

        self._subscription = subscription
        self.state = PipelineState.ACTIVE
        logger.info("[FeedPipeline] Live subscription started")

    def _on_subscription_closed(self, subscription: Optional[RelaySubscription], reason: str) -> None:
        if self._closed or subscription is None or subscription is not self._subscription:
            # A replaced subscription reporting late; the current one is fine
            logger.debug(f"[FeedPipeline] Ignoring close of stale subscription: {reason}")
            return

        logger.warning(
            f"[FeedPipeline] Subscription closed ({reason}); "
            f"reconnecting in {self.reconnect_delay:.0f}s"
        )
        self._subscription = None
        self.state = PipelineState.RECONNECTING
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_after(self.reconnect_delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        logger.info("[FeedPipeline] Restarting subscription")
        self._start_subscription()

    def restart_subscription(self) -> None:
        """Close the current subscription (if any) and open a fresh one."""
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.close()
        self._start_subscription()

    # ==================== Health monitor ====================

    def _start_health_monitor(self) -> None:
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.create_task(self._monitor_health())

    async def _monitor_health(self) -> None:
        last_log = self.clock()
        while True:
            await asyncio.sleep(self.health_check_interval)
            self.check_staleness()
            if self.clock() - last_log >= self.health_log_interval * 1000:
                self.log_health()
                last_log = self.clock()

    def check_staleness(self) -> bool:
        """
        Force a subscription restart if no event arrived within the threshold.

        Catches connections that died without ever reporting a close.

        Returns:
            True if the subscription was restarted
        """
        if self.state is not PipelineState.ACTIVE:
            return False

        idle_seconds = self.seconds_since_activity()
        if idle_seconds <= self.stale_threshold:
            return False

        logger.warning(
            f"[FeedPipeline] No events for {idle_seconds:.0f}s, restarting subscription"
        )
        self.restart_subscription()
        self.last_activity = self.clock()
        return True

    def seconds_since_activity(self) -> float:
        return (self.clock() - self.last_activity) / 1000

    def log_health(self) -> None:
        logger.info(
            f"[FeedPipeline] Health - state: {self.state.value}, "
            f"events: {len(self._events)}, "
            f"event ids: {len(self._seen_event_ids)}, "
            f"archive: {self.store.total_count}, "
            f"observers: {len(self.observers)}"
        )

    # ==================== Event handling ====================

    def handle_event(self, event: RelayEvent) -> Optional[ClassifiedContent]:
        """
        Live subscription callback.

        Archives the event's media synchronously and, if anything new was
        archived, schedules the feed-item notification (which may wait on
        an author profile lookup).
        """
        result = self.ingest(event)
        if result is None:
            return None

        media, added = result
        if added:
            logger.info(
                f"[FeedPipeline] New media from {event.id[:8]}: {added} new item(s)"
            )
            task = asyncio.create_task(self._notify(event, media))
            self._notify_tasks.add(task)
            task.add_done_callback(self._notify_tasks.discard)
        return media

    def ingest(self, event: RelayEvent) -> Optional[tuple[ClassifiedContent, int]]:
        """
        Dedup, buffer and archive one event. No notification.

        Returns:
            (classified media, number of items newly archived), or None if
            the event id was already seen
        """
        if event.id in self._seen_event_ids:
            logger.debug(f"[FeedPipeline] Skipping already seen event {event.id[:8]}")
            return None

        self._remember_event_id(event.id)
        self.last_activity = self.clock()
        self._events.appendleft(event)

        media = self.classify_event(event)
        added = 0
        for item in media.all_items():
            if self.store.add_item(item).added:
                added += 1
        return media, added

    def classify_event(self, event: RelayEvent) -> ClassifiedContent:
        """Classify an event's media and bind every item to the event."""
        raw = MediaClassifier.classify_content(event.content)
        snapshot = event.snapshot()
        bound = ClassifiedContent(text_content=raw.text_content)

        for media_type in STORED_MEDIA_TYPES:
            for item in raw.items_for(media_type):
                category = (
                    self.categorizer.classify(item.url, event.content)
                    if media_type is MediaType.IMAGE
                    else item.category
                )
                bound.items_for(media_type).append(
                    replace(
                        item,
                        timestamp=event.timestamp_ms,
                        category=category,
                        event_id=event.id,
                        event_data=snapshot,
                    )
                )
        return bound

    def _remember_event_id(self, event_id: str) -> None:
        self._seen_event_ids[event_id] = None
        if len(self._seen_event_ids) > self.max_seen_event_ids:
            # Forget the oldest half
            drop = len(self._seen_event_ids) // 2
            for old_id in list(self._seen_event_ids)[:drop]:
                del self._seen_event_ids[old_id]

    async def _notify(self, event: RelayEvent, media: ClassifiedContent) -> None:
        feed_item = await self.build_feed_item(event, media)
        delivered = self.observers.notify(feed_item)
        logger.debug(f"[FeedPipeline] Feed item {event.id[:8]} delivered to {delivered} observer(s)")

    # ==================== Feed items ====================

    async def build_feed_item(
        self, event: RelayEvent, media: Optional[ClassifiedContent] = None
    ) -> FeedItem:
        if media is None:
            media = self.classify_event(event)
        profile = await self.get_author_info(event.pubkey)
        return FeedItem(
            id=event.id,
            author=event.pubkey,
            content=event.content,
            created_at=event.created_at,
            media=media,
            profile=profile,
        )

    async def get_feed_items(self, limit: Optional[int] = None) -> list[FeedItem]:
        """Most recent buffered posts that carry at least one media item, newest first."""
        limit = limit or settings.FEED_DEFAULT_LIMIT
        selected = []
        for event in self._events:
            media = self.classify_event(event)
            if media.total_count == 0:
                continue
            selected.append((event, media))
            if len(selected) >= limit:
                break

        return list(
            await asyncio.gather(
                *(self.build_feed_item(event, media) for event, media in selected)
            )
        )

    def get_event(self, event_id: str) -> Optional[RelayEvent]:
        for event in self._events:
            if event.id == event_id:
                return event
        return None

    @property
    def buffered_events(self) -> list[RelayEvent]:
        return list(self._events)

    def subscribe(self, callback: Callable[[FeedItem], None]) -> Callable[[], None]:
        """Register a new-feed-item observer. Returns an unsubscribe function."""
        return self.observers.subscribe(callback)

    # ==================== Author profiles ====================

    async def get_author_info(self, pubkey: str) -> Optional[AuthorInfo]:
        """
        Kind-0 profile for ``pubkey``, cached.

        Returns None (unknown author) on timeout, relay failure, or an
        unreadable profile; failures are not cached.
        """
        cached = self._profiles.get(pubkey)
        if cached is not None:
            return cached

        filters = {"kinds": [KIND_METADATA], "authors": [pubkey], "limit": 1}
        try:
            profiles = await asyncio.wait_for(
                self.pool.query(filters), timeout=self.profile_timeout
            )
        except asyncio.TimeoutError:
            logger.debug(f"[FeedPipeline] Profile lookup timed out for {pubkey[:8]}")
            return None
        except RelayError as e:
            logger.warning(f"[FeedPipeline] Profile lookup failed for {pubkey[:8]}: {e}")
            return None

        if not profiles:
            return None

        newest = max(profiles, key=lambda event: event.created_at)
        try:
            data = json.loads(newest.content)
        except ValueError:
            logger.warning(f"[FeedPipeline] Failed to parse profile for {pubkey[:8]}")
            return None
        if not isinstance(data, dict):
            return None

        info = AuthorInfo(
            name=data.get("name") or data.get("display_name"),
            picture=data.get("picture"),
        )
        if len(self._profiles) >= self.profile_cache_size:
            self._profiles.pop(next(iter(self._profiles)))
        self._profiles[pubkey] = info
        return info

    # ==================== Status / shutdown ====================

    def status(self) -> dict:
        return {
            "state": self.state.value,
            "retries": self.retries,
            "max_retries": self.max_retries,
            "last_activity": self.last_activity,
            "seconds_since_activity": round(self.seconds_since_activity(), 1),
            "subscription_open": self._subscription is not None and not self._subscription.closed,
            "buffered_events": len(self._events),
            "seen_event_ids": len(self._seen_event_ids),
            "cached_profiles": len(self._profiles),
            "observers": len(self.observers),
        }

    async def close(self) -> None:
        """Stop everything: subscription, retries, monitor, pool. Idempotent."""
        if self._closed:
            return
        self._closed = True

        tasks = [self._retry_task, self._reconnect_task, self._monitor_task, *self._notify_tasks]
        for task in tasks:
            self._cancel_task(task)
        pending = [task for task in tasks if task is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.close()

        await self.pool.close()
        self.store.flush()
        self.state = PipelineState.IDLE
        logger.info("[FeedPipeline] Closed")

    @staticmethod
    def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()
