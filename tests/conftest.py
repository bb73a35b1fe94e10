"""Pytest configuration and fixtures."""

import pytest
from dotenv import load_dotenv

# Load test environment variables before importing any application code
load_dotenv(".env.test", override=True)

from src.repositories.snapshot_repository import JsonSnapshotRepository  # noqa: E402
from src.services.core.time_machine import MediaTimeMachine  # noqa: E402
from tests.factories import FakeClock  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository(tmp_path, clock):
    """Snapshot repository writing under a temp directory."""
    return JsonSnapshotRepository(storage_prefix=tmp_path / "media", clock=clock)


@pytest.fixture
def store(repository, clock):
    """Archive with immediate snapshot writes."""
    return MediaTimeMachine(repository=repository, save_delay_seconds=0, clock=clock)


@pytest.fixture
def memory_store(clock):
    """Archive without persistence."""
    return MediaTimeMachine(repository=None, clock=clock)
