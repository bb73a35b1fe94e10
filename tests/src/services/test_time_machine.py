"""Tests for MediaTimeMachine."""

import asyncio
import json
from collections import deque
from datetime import datetime

import pytest

from src.models.media_item import MediaType
from src.models.time_range import TimeRange
from src.services.core.time_machine import MediaTimeMachine, format_bucket_label
from tests.factories import make_item

HOUR_MS = 60 * 60 * 1000


@pytest.mark.unit
class TestAddItem:
    """Dedup, bounds and rejection behaviour of add_item."""

    def test_duplicate_pair_is_not_added_twice(self, memory_store):
        first = memory_store.add_item(make_item(url="u1", event_id="e1", timestamp=1000))
        second = memory_store.add_item(make_item(url="u1", event_id="e1", timestamp=1000))

        assert first.added is True
        assert second.added is False
        assert second.error is None
        assert len(memory_store.query_by_type(MediaType.IMAGE)) == 1

    def test_same_url_under_different_events_is_kept(self, memory_store):
        memory_store.add_item(make_item(url="u1", event_id="e1"))
        memory_store.add_item(make_item(url="u1", event_id="e2"))

        assert len(memory_store.query_by_type(MediaType.IMAGE)) == 2

    def test_items_without_event_share_sentinel_key(self, memory_store):
        memory_store.add_item(make_item(url="u1", event_id=None))
        result = memory_store.add_item(make_item(url="u1", event_id=None))

        assert result.added is False

    def test_bound_evicts_oldest_inserted(self, clock):
        store = MediaTimeMachine(max_per_type=2, clock=clock)
        u1 = make_item(url="u1", event_id="e1", timestamp=1)
        store.add_item(u1)
        store.add_item(make_item(url="u2", event_id="e2", timestamp=2))
        store.add_item(make_item(url="u3", event_id="e3", timestamp=3))

        urls = [item.url for item in store.query_by_type(MediaType.IMAGE)]
        assert urls == ["u3", "u2"]
        assert store.has_key(u1) is False
        assert store.seen_key_count == 2

    def test_evicted_item_is_accepted_again(self, clock):
        store = MediaTimeMachine(max_per_type=2, clock=clock)
        for n in (1, 2, 3):
            store.add_item(make_item(url=f"u{n}", event_id=f"e{n}", timestamp=n))

        result = store.add_item(make_item(url="u1", event_id="e1", timestamp=1))

        assert result.added is True
        assert [item.url for item in store.query_by_type(MediaType.IMAGE)] == ["u1", "u3"]

    def test_retained_items_follow_insertion_not_timestamp(self, clock):
        store = MediaTimeMachine(max_per_type=2, clock=clock)
        store.add_item(make_item(url="new", event_id="a", timestamp=9000))
        store.add_item(make_item(url="old1", event_id="b", timestamp=10))
        store.add_item(make_item(url="old2", event_id="c", timestamp=20))

        assert [item.url for item in store.query_by_type(MediaType.IMAGE)] == ["old2", "old1"]

    def test_bounds_are_per_type(self, clock):
        store = MediaTimeMachine(max_per_type=1, clock=clock)
        store.add_item(make_item(url="i", event_id="e1"))
        store.add_item(make_item(url="v", event_id="e1", media_type=MediaType.VIDEO))

        assert store.stats()[MediaType.IMAGE] == 1
        assert store.stats()[MediaType.VIDEO] == 1

    def test_missing_url_is_rejected(self, memory_store):
        result = memory_store.add_item({"eventId": "e", "timestamp": 1, "type": "image"})

        assert result.added is False
        assert result.rejected is True
        assert "url" in result.error
        assert memory_store.total_count == 0

    def test_unreadable_event_data_is_rejected(self, memory_store):
        result = memory_store.add_item(
            {"url": "u", "timestamp": 1, "type": "image", "eventData": {"created_at": "abc"}}
        )

        assert result.added is False
        assert result.rejected is True
        assert "created_at" in result.error
        assert memory_store.total_count == 0

    def test_text_type_is_rejected(self, memory_store):
        result = memory_store.add_item({"url": "u", "timestamp": 1, "type": "text"})

        assert result.rejected is True
        assert memory_store.total_count == 0

    def test_dict_without_timestamp_uses_clock(self, memory_store, clock):
        result = memory_store.add_item({"url": "u", "type": "video", "eventId": "e"})

        assert result.added is True
        assert result.item.timestamp == clock.now
        assert result.item.type is MediaType.VIDEO

    def test_plain_string_type_is_normalized(self, memory_store):
        result = memory_store.add_item(make_item(url="u", media_type="audio"))

        assert result.added is True
        assert result.item.type is MediaType.AUDIO
        assert memory_store.stats()[MediaType.AUDIO] == 1

    def test_dedup_invariant_under_repetition(self, memory_store):
        pairs = [("u1", "e1"), ("u2", "e1"), ("u1", "e1"), ("u1", "e2"), ("u2", "e1")] * 3
        for url, event_id in pairs:
            memory_store.add_item(make_item(url=url, event_id=event_id))

        keys = [item.dedup_key for item in memory_store.query_by_type(MediaType.IMAGE)]
        assert len(keys) == len(set(keys)) == 3


@pytest.mark.unit
class TestQueries:
    """Range, type, event and author queries."""

    @pytest.fixture
    def filled_store(self, clock):
        store = MediaTimeMachine(max_per_type=2, clock=clock)
        for n in (1, 2, 3):
            store.add_item(make_item(url=f"u{n}", event_id=f"e{n}", timestamp=n))
        return store

    def test_query_range_is_inclusive_and_filtered(self, filled_store):
        items = filled_store.query_range(TimeRange(0, 2), {MediaType.IMAGE})

        assert [item.url for item in items] == ["u2"]

    def test_query_range_merges_types_sorted_descending(self, memory_store):
        memory_store.add_item(make_item(url="i1", timestamp=100))
        memory_store.add_item(make_item(url="v1", timestamp=300, media_type=MediaType.VIDEO))
        memory_store.add_item(make_item(url="i2", timestamp=200))
        memory_store.add_item(make_item(url="l1", timestamp=250, media_type=MediaType.LINK))

        items = memory_store.query_range(
            TimeRange(100, 300), {MediaType.IMAGE, MediaType.VIDEO}
        )

        assert [item.url for item in items] == ["v1", "i2", "i1"]

    def test_query_range_defaults_to_all_types(self, memory_store):
        memory_store.add_item(make_item(url="i1", timestamp=100))
        memory_store.add_item(make_item(url="d1", timestamp=100, media_type=MediaType.DOCUMENT))

        assert len(memory_store.query_range(TimeRange(0, 1000))) == 2

    def test_each_item_appears_in_exactly_one_partition(self, memory_store):
        timestamps = [0, 5, 9, 10, 11, 19, 20, 29]
        for ts in timestamps:
            memory_store.add_item(make_item(url=f"u{ts}", timestamp=ts))

        partitions = [TimeRange(0, 9), TimeRange(10, 19), TimeRange(20, 29)]
        found = [
            item.url
            for time_range in partitions
            for item in memory_store.query_range(time_range, {MediaType.IMAGE})
        ]

        assert sorted(found) == sorted(f"u{ts}" for ts in timestamps)

    def test_query_by_type_without_range_keeps_insertion_order(self, memory_store):
        memory_store.add_item(make_item(url="late", timestamp=10))
        memory_store.add_item(make_item(url="early", timestamp=1))

        urls = [item.url for item in memory_store.query_by_type(MediaType.IMAGE)]
        assert urls == ["early", "late"]

    def test_query_by_type_with_range_sorts(self, memory_store):
        memory_store.add_item(make_item(url="a", timestamp=10))
        memory_store.add_item(make_item(url="b", timestamp=1))

        urls = [
            item.url for item in memory_store.query_by_type(MediaType.IMAGE, TimeRange(0, 10))
        ]
        assert urls == ["a", "b"]

    def test_find_by_event_id_prefers_image(self, memory_store):
        memory_store.add_item(make_item(url="v", event_id="shared", media_type=MediaType.VIDEO))
        memory_store.add_item(make_item(url="i", event_id="shared"))

        assert memory_store.find_by_event_id("shared").url == "i"

    def test_find_by_event_id_scans_other_types(self, memory_store):
        memory_store.add_item(make_item(url="d", event_id="doc", media_type=MediaType.DOCUMENT))

        assert memory_store.find_by_event_id("doc").type is MediaType.DOCUMENT
        assert memory_store.find_by_event_id("missing") is None

    def test_find_by_author(self, memory_store):
        memory_store.add_item(make_item(url="a", event_id="e1", timestamp=1000, author="alice"))
        memory_store.add_item(make_item(url="b", event_id="e2", timestamp=5000, author="bob"))
        memory_store.add_item(
            make_item(url="c", event_id="e3", timestamp=3000, author="alice", media_type=MediaType.LINK)
        )
        memory_store.add_item(make_item(url="d", event_id="e4", timestamp=4000))

        assert [item.url for item in memory_store.find_by_author("alice")] == ["c", "a"]
        assert memory_store.find_by_author("nobody") == []

    def test_stats_and_total(self, memory_store):
        memory_store.add_item(make_item(url="i"))
        memory_store.add_item(make_item(url="v", media_type=MediaType.VIDEO))

        stats = memory_store.stats()
        assert stats[MediaType.IMAGE] == 1
        assert stats[MediaType.VIDEO] == 1
        assert stats[MediaType.LINK] == 0
        assert MediaType.TEXT not in stats
        assert memory_store.total_count == 2

    def test_time_span(self, memory_store):
        assert memory_store.time_span() is None

        memory_store.add_item(make_item(url="a", timestamp=500))
        memory_store.add_item(make_item(url="b", timestamp=100))
        memory_store.add_item(make_item(url="v", timestamp=1, media_type=MediaType.VIDEO))

        assert memory_store.time_span() == (100, 500)


@pytest.mark.unit
class TestMaintenance:
    """dedupe and clear."""

    def _with_duplicates(self, store):
        a = make_item(url="a", event_id="e1", timestamp=3)
        b = make_item(url="b", event_id="e2", timestamp=2)
        store._collections[MediaType.IMAGE] = deque([a, b, a, make_item(url="a", event_id="e1", timestamp=9)])
        store._rebuild_seen_keys()

    def test_dedupe_keeps_first_occurrence(self, memory_store):
        self._with_duplicates(memory_store)

        removed = memory_store.dedupe()

        items = memory_store.query_by_type(MediaType.IMAGE)
        assert removed["image"] == 2
        assert removed["video"] == 0
        assert [(item.url, item.timestamp) for item in items] == [("a", 3), ("b", 2)]

    def test_dedupe_is_idempotent(self, memory_store):
        self._with_duplicates(memory_store)

        memory_store.dedupe()
        once = memory_store.query_by_type(MediaType.IMAGE)
        removed = memory_store.dedupe()

        assert memory_store.query_by_type(MediaType.IMAGE) == once
        assert sum(removed.values()) == 0

    def test_dedupe_rebuilds_seen_set(self, memory_store):
        self._with_duplicates(memory_store)
        memory_store._seen_keys.add("stale:key")

        memory_store.dedupe()

        assert memory_store.seen_key_count == 2

    def test_dedupe_is_tracked(self, memory_store):
        memory_store.dedupe(triggered_by="cli")

        assert memory_store.last_run["method"] == "dedupe"
        assert memory_store.last_run["triggered_by"] == "cli"
        assert memory_store.last_run["success"] is True

    def test_clear_empties_everything(self, store, repository):
        store.add_item(make_item(url="a"))
        store.add_item(make_item(url="b", media_type=MediaType.VIDEO))

        store.clear()

        assert store.total_count == 0
        assert store.seen_key_count == 0
        assert repository.load_archive().total_count == 0


@pytest.mark.unit
class TestTimeBuckets:
    """Histogram over the image collection."""

    def test_no_images_yields_placeholder_bucket(self, memory_store, clock):
        buckets = memory_store.time_buckets(60)

        assert len(buckets) == 1
        assert buckets[0].label == "No images yet"
        assert buckets[0].count == 0
        assert buckets[0].end == clock.now
        assert buckets[0].start == clock.now - HOUR_MS

    def test_newest_bucket_reaches_now(self, memory_store, clock):
        memory_store.add_item(make_item(url="old", timestamp=clock.now - 5 * HOUR_MS))

        buckets = memory_store.time_buckets(60)

        assert buckets[0].end >= clock.now
        assert buckets[0].start <= clock.now
        assert buckets[-1].start <= clock.now - 5 * HOUR_MS

    def test_buckets_are_aligned_and_newest_first(self, memory_store, clock):
        memory_store.add_item(make_item(url="a", timestamp=clock.now - 3 * HOUR_MS))

        buckets = memory_store.time_buckets(60)

        assert all(bucket.start % HOUR_MS == 0 for bucket in buckets)
        starts = [bucket.start for bucket in buckets]
        assert starts == sorted(starts, reverse=True)

    def test_counts_cover_every_image(self, memory_store, clock):
        offsets = [0, 10, 65, 130, 131, 400]
        for n, minutes in enumerate(offsets):
            memory_store.add_item(
                make_item(url=f"u{n}", timestamp=clock.now - minutes * 60 * 1000)
            )
        memory_store.add_item(make_item(url="v", timestamp=clock.now, media_type=MediaType.VIDEO))

        buckets = memory_store.time_buckets(30)

        assert sum(bucket.count for bucket in buckets) == len(offsets)

    def test_default_bucket_size_from_settings(self, memory_store, clock):
        memory_store.add_item(make_item(url="a", timestamp=clock.now))

        assert memory_store.time_buckets()[0].end >= clock.now


@pytest.mark.unit
class TestBucketLabels:
    """Local-time bucket labels."""

    def _ms(self, *args) -> int:
        return int(datetime(*args).timestamp() * 1000)

    def test_today(self):
        now = self._ms(2024, 5, 10, 15, 30)
        label = format_bucket_label(self._ms(2024, 5, 10, 14, 0), self._ms(2024, 5, 10, 15, 0), now)

        assert label == "Today 14:00 - 15:00"

    def test_yesterday(self):
        now = self._ms(2024, 5, 10, 15, 30)
        label = format_bucket_label(self._ms(2024, 5, 9, 8, 0), self._ms(2024, 5, 9, 9, 0), now)

        assert label == "Yesterday 08:00 - 09:00"

    def test_older_dates(self):
        now = self._ms(2024, 5, 10, 15, 30)
        label = format_bucket_label(self._ms(2024, 5, 1, 23, 0), self._ms(2024, 5, 2, 0, 0), now)

        assert label == "2024-05-01 23:00 - 00:00"


@pytest.mark.unit
class TestPersistence:
    """Load/flush through the snapshot repository."""

    def test_round_trip_through_snapshot(self, store, repository, clock):
        store.add_item(make_item(url="a", event_id="e1", timestamp=10, author="alice"))
        store.add_item(make_item(url="v", event_id="e2", timestamp=20, media_type=MediaType.VIDEO))

        reloaded = MediaTimeMachine(repository=repository, save_delay_seconds=0, clock=clock)
        counts = reloaded.load()

        assert counts[MediaType.IMAGE] == 1
        assert counts[MediaType.VIDEO] == 1
        assert reloaded.find_by_event_id("e1").author == "alice"
        assert reloaded.add_item(make_item(url="a", event_id="e1", timestamp=10)).added is False

    def test_load_drops_duplicates_from_snapshot(self, repository, clock):
        entry = {"url": "a", "timestamp": 1, "type": "image", "eventId": "e1"}
        repository.archive_path.parent.mkdir(parents=True, exist_ok=True)
        repository.archive_path.write_text(json.dumps({"images": [entry, entry], "timestamp": 1}))

        store = MediaTimeMachine(repository=repository, save_delay_seconds=0, clock=clock)
        store.load()

        assert store.stats()[MediaType.IMAGE] == 1

    def test_load_skips_entry_with_unreadable_event_data(self, repository, clock):
        good = {"url": "a", "timestamp": 1, "type": "image", "eventId": "e1"}
        bad = {"url": "b", "timestamp": 2, "type": "image", "eventData": {"created_at": "abc"}}
        repository.archive_path.parent.mkdir(parents=True, exist_ok=True)
        repository.archive_path.write_text(json.dumps({"images": [good, bad]}))

        store = MediaTimeMachine(repository=repository, save_delay_seconds=0, clock=clock)
        store.load()

        assert [item.url for item in store.query_by_type(MediaType.IMAGE)] == ["a"]

    def test_load_respects_bound(self, repository, clock):
        entries = [{"url": f"u{n}", "timestamp": n, "type": "image"} for n in range(5)]
        repository.archive_path.parent.mkdir(parents=True, exist_ok=True)
        repository.archive_path.write_text(json.dumps({"images": entries}))

        store = MediaTimeMachine(repository=repository, max_per_type=3, clock=clock)
        store.load()

        assert [item.url for item in store.query_by_type(MediaType.IMAGE)] == ["u0", "u1", "u2"]

    def test_missing_snapshot_loads_empty(self, store):
        assert sum(store.load().values()) == 0

    def test_corrupt_snapshot_loads_empty(self, store, repository):
        repository.archive_path.parent.mkdir(parents=True, exist_ok=True)
        repository.archive_path.write_text("{not json")

        assert store.load()[MediaType.IMAGE] == 0

    def test_flush_without_changes_is_noop(self, store, repository):
        assert store.flush() is True
        assert not repository.archive_path.exists()

    @pytest.mark.asyncio
    async def test_saves_are_debounced_inside_event_loop(self, repository, clock):
        store = MediaTimeMachine(repository=repository, save_delay_seconds=0.05, clock=clock)

        store.add_item(make_item(url="a"))
        store.add_item(make_item(url="b"))
        assert not repository.archive_path.exists()

        await asyncio.sleep(0.1)

        assert repository.load_archive().total_count == 2

    @pytest.mark.asyncio
    async def test_flush_writes_pending_changes_immediately(self, repository, clock):
        store = MediaTimeMachine(repository=repository, save_delay_seconds=60, clock=clock)
        store.add_item(make_item(url="a"))

        assert store.flush() is True
        assert repository.load_archive().total_count == 1
        assert store._pending_save is None
