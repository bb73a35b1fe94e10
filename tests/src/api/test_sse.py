"""Tests for the SSE broadcaster."""

import asyncio
import json
from unittest.mock import Mock

import pytest

from src.api.sse import CONNECTED_FRAME, KEEPALIVE_FRAME, FeedBroadcaster, format_sse
from src.models.feed_item import ClassifiedContent, FeedItem


def make_feed_item(item_id="ev1"):
    return FeedItem(id=item_id, author="pk1", content="hi", created_at=1, media=ClassifiedContent())


@pytest.fixture
def feed_service():
    service = Mock()
    service.subscribe.return_value = Mock()
    return service


@pytest.mark.unit
class TestFormatSse:
    def test_json_payload_with_event(self):
        assert format_sse({"a": 1}, event="feed-item") == 'event: feed-item\ndata: {"a": 1}\n\n'

    def test_multiline_string(self):
        assert format_sse("one\ntwo") == "data: one\ndata: two\n\n"

    def test_empty_string(self):
        assert format_sse("") == "data: \n\n"


@pytest.mark.unit
class TestFeedBroadcaster:
    """Fan-out to client queues."""

    def test_start_subscribes_once_and_stop_unsubscribes(self, feed_service):
        broadcaster = FeedBroadcaster(feed_service)

        broadcaster.start()
        broadcaster.start()
        broadcaster.stop()

        feed_service.subscribe.assert_called_once_with(broadcaster.publish)
        feed_service.subscribe.return_value.assert_called_once()

    @pytest.mark.asyncio
    async def test_publish_reaches_every_client(self, feed_service):
        broadcaster = FeedBroadcaster(feed_service)
        first, second = broadcaster.register(), broadcaster.register()

        broadcaster.publish(make_feed_item())

        for queue in (first, second):
            frame = queue.get_nowait()
            assert frame.startswith("event: feed-item\ndata: ")
            payload = json.loads(frame.split("data: ", 1)[1])
            assert payload["id"] == "ev1"

    @pytest.mark.asyncio
    async def test_full_queue_drops_frame(self, feed_service):
        broadcaster = FeedBroadcaster(feed_service, queue_size=1)
        slow, fast = broadcaster.register(), broadcaster.register()

        broadcaster.publish(make_feed_item("a"))
        fast.get_nowait()
        broadcaster.publish(make_feed_item("b"))

        assert broadcaster.dropped_frames == 1
        assert slow.qsize() == 1
        assert fast.qsize() == 1

    @pytest.mark.asyncio
    async def test_stream_yields_frames_and_unregisters(self, feed_service):
        broadcaster = FeedBroadcaster(feed_service)
        stream = broadcaster.stream(keepalive_seconds=0.01)

        assert await stream.__anext__() == CONNECTED_FRAME
        assert broadcaster.client_count == 1
        assert await stream.__anext__() == KEEPALIVE_FRAME

        broadcaster.publish(make_feed_item())
        assert "feed-item" in await stream.__anext__()

        await stream.aclose()
        assert broadcaster.client_count == 0

    @pytest.mark.asyncio
    async def test_stream_stops_when_client_disconnects(self, feed_service):
        broadcaster = FeedBroadcaster(feed_service)

        async def disconnected():
            return True

        frames = [frame async for frame in broadcaster.stream(is_disconnected=disconnected)]

        assert frames == [CONNECTED_FRAME]
        assert broadcaster.client_count == 0

    def test_unstarted_stream_holds_no_client(self, feed_service):
        broadcaster = FeedBroadcaster(feed_service)

        stream = broadcaster.stream()

        assert broadcaster.client_count == 0
