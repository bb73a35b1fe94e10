"""Server-Sent Events fan-out of new feed items."""

import asyncio
import json
from typing import AsyncIterator, Awaitable, Callable, Optional

from src.config.settings import settings
from src.models.feed_item import FeedItem
from src.services.core.feed_service import FeedService
from src.utils.logger import logger

CONNECTED_FRAME = ": connected\n\n"
KEEPALIVE_FRAME = ": keep-alive\n\n"


def format_sse(data, event: Optional[str] = None) -> str:
    """Encode one SSE frame; ``data`` is JSON-encoded unless already a string."""
    payload = data if isinstance(data, str) else json.dumps(data)
    lines = [f"event: {event}"] if event else []
    lines.extend(f"data: {line}" for line in payload.splitlines() or [""])
    return "\n".join(lines) + "\n\n"


class FeedBroadcaster:
    """
    Pushes new feed items to every connected SSE client.

    Subscribes once to the feed service; each client gets a bounded queue.
    A client whose queue is full misses that frame instead of slowing
    ingestion down.
    """

    def __init__(self, feed_service: FeedService, queue_size: Optional[int] = None):
        self.feed_service = feed_service
        self.queue_size = queue_size or settings.SSE_CLIENT_QUEUE_SIZE
        self.dropped_frames = 0
        self._clients: set[asyncio.Queue] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.feed_service.subscribe(self.publish)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._clients.clear()

    def register(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._clients.add(queue)
        logger.info(f"[FeedBroadcaster] Client connected ({len(self._clients)} total)")
        return queue

    def unregister(self, queue: asyncio.Queue) -> None:
        self._clients.discard(queue)
        logger.info(f"[FeedBroadcaster] Client disconnected ({len(self._clients)} total)")

    def publish(self, item: FeedItem) -> None:
        frame = format_sse(item.to_dict(), event="feed-item")
        for queue in list(self._clients):
            try:
                queue.put_nowait(frame)
            except asyncio.QueueFull:
                self.dropped_frames += 1
                logger.warning(f"[FeedBroadcaster] Client queue full, dropped frame for {item.id[:8]}")

    async def stream(
        self,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
        keepalive_seconds: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """
        Yield frames for one client until it disconnects.

        The client queue is registered on first iteration, so a response
        abandoned before its body starts never holds a queue.
        """
        keepalive_seconds = keepalive_seconds or settings.SSE_KEEPALIVE_SECONDS
        queue = self.register()
        try:
            yield CONNECTED_FRAME
            while True:
                if is_disconnected is not None and await is_disconnected():
                    break
                try:
                    frame = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
                except asyncio.TimeoutError:
                    yield KEEPALIVE_FRAME
                    continue
                yield frame
        finally:
            self.unregister(queue)
