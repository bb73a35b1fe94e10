"""Relay pool - Nostr relay client over websockets (NIP-01)."""

import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import websockets
from websockets.exceptions import WebSocketException

from src.config.settings import settings
from src.exceptions import RelayConnectionError, RelayTimeoutError
from src.models.feed_item import RelayEvent
from src.utils.logger import logger

# Errors that mean "this relay is unusable right now"
RELAY_FAILURES = (OSError, WebSocketException, asyncio.TimeoutError)


def new_subscription_id() -> str:
    return uuid.uuid4().hex[:16]


def parse_relay_message(raw: Any) -> Optional[list]:
    """
    Decode one relay frame into a JSON array.

    Returns:
        The decoded list (``["EVENT", sub_id, event]``, ``["EOSE", sub_id]``,
        ``["CLOSED", sub_id, reason]``, ``["NOTICE", msg]``), or None for
        anything that is not a JSON array with a string tag
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(message, list) or not message or not isinstance(message[0], str):
        return None
    return message


class RelaySubscription:
    """
    Handle for a live subscription across several relays.

    ``close()`` is idempotent and never raises. An explicit close does not
    fire ``on_close``; that callback only reports upstream-initiated ends
    (every relay connection of the subscription has finished).
    """

    def __init__(
        self,
        subscription_id: str,
        on_event: Callable[[RelayEvent], None],
        on_eose: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[[str], None]] = None,
    ):
        self.id = subscription_id
        self.on_event = on_event
        self.on_eose = on_eose
        self.on_close = on_close
        self.closed = False
        self.eose_received = False
        self._tasks: dict[str, asyncio.Task] = {}
        self._close_reasons: dict[str, str] = {}

    @property
    def relay_count(self) -> int:
        return len(self._tasks)

    def attach(self, relay_url: str, task: asyncio.Task) -> None:
        self._tasks[relay_url] = task

    def mark_eose(self) -> None:
        if self.eose_received:
            return
        self.eose_received = True
        if self.on_eose:
            self.on_eose()

    def relay_finished(self, relay_url: str, reason: str) -> None:
        """Record the end of one relay stream; fire ``on_close`` after the last one."""
        self._close_reasons[relay_url] = reason
        if self.closed or len(self._close_reasons) < len(self._tasks):
            return
        self.closed = True
        if self.on_close:
            reasons = "; ".join(sorted(set(self._close_reasons.values())))
            self.on_close(reasons or "closed")

    def pending_tasks(self) -> list[asyncio.Task]:
        return [task for task in self._tasks.values() if not task.done()]

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for task in self.pending_tasks():
            task.cancel()


class RelayPool(ABC):
    """
    Upstream relay client interface.

    Implementations talk to a set of relays and merge their answers.
    """

    @abstractmethod
    async def query(self, filters: dict) -> list[RelayEvent]:
        """
        Fetch stored events matching ``filters`` until end-of-stored-events.

        Callers race this against their own timeout.

        Raises:
            RelayTimeoutError: If every relay timed out
            RelayConnectionError: If no relay could be queried for other reasons
        """

    @abstractmethod
    def subscribe(
        self,
        filters: dict,
        on_event: Callable[[RelayEvent], None],
        on_eose: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[[str], None]] = None,
    ) -> RelaySubscription:
        """Open a live subscription; must be called from a running event loop."""

    @abstractmethod
    async def close(self) -> None:
        """Tear down all subscriptions and connections."""


class WebsocketRelayPool(RelayPool):
    """
    Relay pool speaking NIP-01 over one websocket per relay and request.

    Queries fan out to every relay concurrently; results are merged and
    de-duplicated by event id. A relay that fails is logged and skipped.
    Event signatures are not verified.
    """

    def __init__(
        self,
        relay_urls: Optional[list[str]] = None,
        connect_timeout: Optional[float] = None,
        query_timeout: Optional[float] = None,
    ):
        self.relay_urls = relay_urls or settings.relay_urls
        self.connect_timeout = connect_timeout or settings.RELAY_CONNECT_TIMEOUT_SECONDS
        self.query_timeout = query_timeout or settings.BULK_FETCH_TIMEOUT_SECONDS
        self._subscriptions: set[RelaySubscription] = set()

    # ==================== Query ====================

    async def query(self, filters: dict) -> list[RelayEvent]:
        subscription_id = new_subscription_id()
        results = await asyncio.gather(
            *(self._query_relay(url, filters, subscription_id) for url in self.relay_urls),
            return_exceptions=True,
        )

        merged: dict[str, RelayEvent] = {}
        failures = 0
        timeouts = 0
        for url, result in zip(self.relay_urls, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                failures += 1
                if isinstance(result, asyncio.TimeoutError):
                    timeouts += 1
                logger.warning(f"[RelayPool] Query failed on {url}: {result!r}")
                continue
            for event in result:
                merged.setdefault(event.id, event)

        if self.relay_urls and failures == len(self.relay_urls):
            if timeouts == failures:
                raise RelayTimeoutError(f"All {failures} relays timed out answering query")
            raise RelayConnectionError(f"All {failures} relays failed to answer query")

        events = sorted(merged.values(), key=lambda event: event.created_at, reverse=True)
        limit = filters.get("limit")
        if isinstance(limit, int) and limit > 0:
            events = events[:limit]

        logger.debug(
            f"[RelayPool] Query returned {len(events)} events "
            f"({len(self.relay_urls) - failures}/{len(self.relay_urls)} relays answered)"
        )
        return events

    async def _query_relay(self, url: str, filters: dict, subscription_id: str) -> list[RelayEvent]:
        async def collect() -> list[RelayEvent]:
            events: list[RelayEvent] = []
            async with websockets.connect(url, open_timeout=self.connect_timeout) as ws:
                await ws.send(json.dumps(["REQ", subscription_id, filters]))
                async for raw in ws:
                    message = parse_relay_message(raw)
                    if message is None or len(message) < 2 or message[1] != subscription_id:
                        continue
                    if message[0] == "EVENT" and len(message) >= 3:
                        event = RelayEvent.from_wire(message[2])
                        if event is not None:
                            events.append(event)
                    elif message[0] == "EOSE":
                        await ws.send(json.dumps(["CLOSE", subscription_id]))
                        break
                    elif message[0] == "CLOSED":
                        break
            return events

        return await asyncio.wait_for(collect(), timeout=self.query_timeout)

    # ==================== Subscribe ====================

    def subscribe(
        self,
        filters: dict,
        on_event: Callable[[RelayEvent], None],
        on_eose: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[[str], None]] = None,
    ) -> RelaySubscription:
        subscription = RelaySubscription(
            new_subscription_id(), on_event=on_event, on_eose=on_eose, on_close=on_close
        )
        for url in self.relay_urls:
            task = asyncio.create_task(self._stream_relay(url, filters, subscription))
            subscription.attach(url, task)

        self._subscriptions.add(subscription)
        logger.info(
            f"[RelayPool] Subscription {subscription.id} opened on {len(self.relay_urls)} relays"
        )
        return subscription

    async def _stream_relay(self, url: str, filters: dict, subscription: RelaySubscription) -> None:
        reason = "connection closed"
        try:
            async with websockets.connect(url, open_timeout=self.connect_timeout) as ws:
                await ws.send(json.dumps(["REQ", subscription.id, filters]))
                async for raw in ws:
                    if not self.handle_message(raw, subscription, url):
                        reason = "closed by relay"
                        break
        except asyncio.CancelledError:
            self._subscriptions.discard(subscription)
            raise
        except RELAY_FAILURES as e:
            reason = f"{type(e).__name__}: {e}"
            logger.warning(f"[RelayPool] Stream from {url} ended: {reason}")

        subscription.relay_finished(url, reason)
        if subscription.closed:
            self._subscriptions.discard(subscription)

    def handle_message(self, raw: Any, subscription: RelaySubscription, relay_url: str = "") -> bool:
        """
        Dispatch one frame of a live subscription.

        Returns:
            False when the relay ended the subscription (``CLOSED``)
        """
        message = parse_relay_message(raw)
        if message is None:
            logger.debug(f"[RelayPool] Ignoring unreadable frame from {relay_url}")
            return True

        tag = message[0]
        if tag == "NOTICE":
            logger.info(f"[RelayPool] Notice from {relay_url}: {message[1:]}")
            return True
        if len(message) < 2 or message[1] != subscription.id:
            return True

        if tag == "EVENT" and len(message) >= 3:
            event = RelayEvent.from_wire(message[2])
            if event is None:
                logger.debug(f"[RelayPool] Dropping malformed event from {relay_url}")
                return True
            try:
                subscription.on_event(event)
            except Exception as e:
                logger.error(f"[RelayPool] Event handler failed for {event.id[:8]}: {e}", exc_info=True)
        elif tag == "EOSE":
            subscription.mark_eose()
        elif tag == "CLOSED":
            logger.info(
                f"[RelayPool] {relay_url} closed subscription: "
                f"{message[2] if len(message) > 2 else 'no reason'}"
            )
            return False
        return True

    async def close(self) -> None:
        subscriptions = list(self._subscriptions)
        self._subscriptions.clear()
        tasks = []
        for subscription in subscriptions:
            tasks.extend(subscription.pending_tasks())
            subscription.close()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"[RelayPool] Closed {len(subscriptions)} subscription(s)")
