"""Repository layer - snapshot persistence."""

from src.repositories.snapshot_repository import (
    ArchiveSnapshot,
    JsonSnapshotRepository,
    SnapshotRepository,
)

__all__ = [
    "ArchiveSnapshot",
    "JsonSnapshotRepository",
    "SnapshotRepository",
]
