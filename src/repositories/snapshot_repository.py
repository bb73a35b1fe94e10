"""Snapshot repository - flat JSON persistence for the archive and window settings."""

import json
import os
import random
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from src.config.constants import (
    ARCHIVE_FILE_SUFFIX,
    DEFAULT_IMAGE_CATEGORY,
    WINDOW_FILE_SUFFIX,
)
from src.config.settings import settings
from src.exceptions.media import InvalidMediaItemError, SnapshotError
from src.models.media_item import COLLECTION_KEYS, MediaItem, MediaType, STORED_MEDIA_TYPES
from src.models.time_range import CurrentView
from src.utils.clock import now_ms
from src.utils.logger import logger

# Legacy bare-URL entries get a synthesized timestamp up to one day old
LEGACY_MAX_AGE_MS = 24 * 60 * 60 * 1000


@dataclass
class ArchiveSnapshot:
    """In-memory form of the archive snapshot file.

    Attributes:
        collections: Items per media type, newest-first
        timestamp: When the snapshot was written (epoch ms), None if never
    """

    collections: dict = field(
        default_factory=lambda: {media_type: [] for media_type in STORED_MEDIA_TYPES}
    )
    timestamp: Optional[int] = None

    def items(self, media_type: MediaType) -> list[MediaItem]:
        return self.collections.get(media_type, [])

    @property
    def total_count(self) -> int:
        return sum(len(items) for items in self.collections.values())

    def to_dict(self, max_per_type: Optional[int] = None) -> dict:
        """Serialize to the file shape, keeping the first ``max_per_type`` items of each type."""
        data = {}
        for media_type in STORED_MEDIA_TYPES:
            items = self.items(media_type)
            if max_per_type is not None:
                items = items[:max_per_type]
            data[COLLECTION_KEYS[media_type]] = [item.to_dict() for item in items]
        data["timestamp"] = self.timestamp
        return data


class SnapshotRepository(ABC):
    """
    Persistence interface for the archive and the current view.

    The Store and the navigator only talk to this interface, so the flat
    file can be swapped for an embedded database without touching them.
    """

    @abstractmethod
    def load_archive(self) -> ArchiveSnapshot:
        """Load the archive. Returns an empty snapshot if nothing usable is stored."""

    @abstractmethod
    def save_archive(self, snapshot: ArchiveSnapshot) -> bool:
        """Persist the archive. Returns False (after logging) on failure."""

    @abstractmethod
    def load_window(self) -> Optional[CurrentView]:
        """Load the saved current view, or None if there is none."""

    @abstractmethod
    def save_window(self, view: CurrentView) -> bool:
        """Persist the current view. Returns False (after logging) on failure."""


class JsonSnapshotRepository(SnapshotRepository):
    """
    Snapshot files on local disk.

    ``<prefix>.json`` holds the five media collections and
    ``<prefix>-window.json`` holds the current view. Writes go to a
    temporary file in the same directory which is then renamed over the
    target, so a failed write never corrupts the previous snapshot.
    """

    def __init__(
        self,
        storage_prefix: Optional[Path] = None,
        max_per_type: Optional[int] = None,
        clock: Callable[[], int] = now_ms,
    ):
        prefix = Path(storage_prefix or settings.storage_prefix)
        self.archive_path = prefix.with_name(prefix.name + ARCHIVE_FILE_SUFFIX)
        self.window_path = prefix.with_name(prefix.name + WINDOW_FILE_SUFFIX)
        self.max_per_type = max_per_type or settings.SNAPSHOT_MAX_PER_TYPE
        self.clock = clock

    # ==================== Archive ====================

    def load_archive(self) -> ArchiveSnapshot:
        snapshot = ArchiveSnapshot()

        if not self.archive_path.exists():
            logger.info(f"[SnapshotRepository] No archive snapshot at {self.archive_path}, starting fresh")
            return snapshot

        try:
            data = self._read_json(self.archive_path)
        except SnapshotError as e:
            logger.error(f"[SnapshotRepository] Failed to load archive: {e}")
            return snapshot

        if not isinstance(data, dict):
            logger.warning("[SnapshotRepository] Archive snapshot format invalid, starting fresh")
            return snapshot

        skipped = 0
        for media_type in STORED_MEDIA_TYPES:
            entries = data.get(COLLECTION_KEYS[media_type])
            if not isinstance(entries, list):
                continue
            items = []
            for entry in entries:
                item = self._parse_entry(entry, media_type)
                if item is None:
                    skipped += 1
                    continue
                items.append(item)
            snapshot.collections[media_type] = items

        timestamp = data.get("timestamp")
        snapshot.timestamp = timestamp if isinstance(timestamp, int) else None

        logger.info(
            f"[SnapshotRepository] Loaded archive: "
            + ", ".join(
                f"{len(snapshot.items(t))} {COLLECTION_KEYS[t]}" for t in STORED_MEDIA_TYPES
            )
            + (f" ({skipped} unreadable entries skipped)" if skipped else "")
        )
        return snapshot

    def save_archive(self, snapshot: ArchiveSnapshot) -> bool:
        snapshot.timestamp = self.clock()
        try:
            self._write_json_atomic(self.archive_path, snapshot.to_dict(self.max_per_type))
        except SnapshotError as e:
            logger.error(f"[SnapshotRepository] Error saving archive snapshot: {e}")
            return False

        logger.debug(f"[SnapshotRepository] Archive snapshot written ({snapshot.total_count} items in memory)")
        return True

    def _parse_entry(self, entry, media_type: MediaType) -> Optional[MediaItem]:
        """Parse one stored entry, upgrading legacy bare-URL images."""
        if isinstance(entry, str) and media_type is MediaType.IMAGE:
            return MediaItem(
                url=entry,
                timestamp=self.clock() - int(random.random() * LEGACY_MAX_AGE_MS),
                type=MediaType.IMAGE,
                category=DEFAULT_IMAGE_CATEGORY,
            )
        try:
            return MediaItem.from_dict(entry, default_type=media_type)
        except InvalidMediaItemError as e:
            logger.debug(f"[SnapshotRepository] Skipping unreadable {media_type.value} entry: {e}")
            return None

    # ==================== Window settings ====================

    def load_window(self) -> Optional[CurrentView]:
        if not self.window_path.exists():
            return None

        try:
            data = self._read_json(self.window_path)
            if not isinstance(data, dict) or "currentTimeRange" not in data:
                logger.warning("[SnapshotRepository] Window settings format invalid, ignoring")
                return None
            view = CurrentView.from_dict(data)
        except (SnapshotError, InvalidMediaItemError, KeyError, TypeError, ValueError) as e:
            logger.error(f"[SnapshotRepository] Failed to load window settings: {e}")
            return None

        logger.info(
            f"[SnapshotRepository] Restored window settings: "
            f"{'user-controlled' if view.user_controlled else 'auto'} window"
        )
        return view

    def save_window(self, view: CurrentView) -> bool:
        try:
            self._write_json_atomic(self.window_path, view.to_dict(saved_at=self.clock()))
        except SnapshotError as e:
            logger.error(f"[SnapshotRepository] Error saving window settings: {e}")
            return False
        return True

    # ==================== File helpers ====================

    @staticmethod
    def _read_json(path: Path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SnapshotError(str(e), path=str(path))

    @staticmethod
    def _write_json_atomic(path: Path, data) -> None:
        """Write JSON to a temp file next to ``path`` and rename it into place."""
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                json.dump(data, tmp, indent=2)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
            raise SnapshotError(str(e), path=str(path))
