"""Service container - builds the explicitly owned service graph."""

from dataclasses import dataclass
from typing import Optional

from src.repositories.snapshot_repository import JsonSnapshotRepository, SnapshotRepository
from src.services.core.feed_pipeline import FeedPipeline
from src.services.core.feed_service import FeedService
from src.services.core.health_check import HealthCheckService
from src.services.core.media_classifier import ImageCategorizer
from src.services.core.time_machine import MediaTimeMachine
from src.services.core.time_navigation import TimeNavigator
from src.services.integrations.relay_pool import RelayPool, WebsocketRelayPool


@dataclass
class ServiceContainer:
    """One instance of every service, constructed once per process."""

    repository: SnapshotRepository
    store: MediaTimeMachine
    navigator: TimeNavigator
    pipeline: FeedPipeline
    feed_service: FeedService
    health_service: HealthCheckService


def build_container(
    pool: Optional[RelayPool] = None,
    repository: Optional[SnapshotRepository] = None,
    load_archive: bool = True,
) -> ServiceContainer:
    """
    Wire up the services.

    Args:
        pool: Relay client (default: websocket pool over NOSTR_RELAYS)
        repository: Snapshot persistence (default: JSON files under DATA_DIR)
        load_archive: Load the archive snapshot before returning
    """
    repository = repository or JsonSnapshotRepository()
    store = MediaTimeMachine(repository=repository)
    if load_archive:
        store.load()

    navigator = TimeNavigator(store, repository=repository)
    pipeline = FeedPipeline(pool or WebsocketRelayPool(), store, categorizer=ImageCategorizer())

    return ServiceContainer(
        repository=repository,
        store=store,
        navigator=navigator,
        pipeline=pipeline,
        feed_service=FeedService(store, navigator, pipeline),
        health_service=HealthCheckService(pipeline, store),
    )
