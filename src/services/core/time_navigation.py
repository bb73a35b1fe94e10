"""Time navigation - move the current view window over the archive."""

from typing import Callable, Iterable, Optional

from src.config.constants import MS_PER_MINUTE
from src.config.settings import settings
from src.models.media_item import MediaItem, MediaType
from src.models.time_range import CurrentView, TimeBucket, TimeRange
from src.repositories.snapshot_repository import SnapshotRepository
from src.services.core.time_machine import MediaTimeMachine
from src.utils.clock import now_ms
from src.utils.logger import logger


class TimeNavigator:
    """
    Owns the CurrentView and the operations that move it.

    Navigation never touches the archive itself; every operation only
    rewrites the current view, persists it, and reads the archive for the
    new window.

    ``user_controlled`` semantics:
    - travel_to_range (and everything built on it) sets the flag.
    - jump_to_now never sets it, but when it is already set the current
      span is kept instead of the default one.
    """

    def __init__(
        self,
        store: MediaTimeMachine,
        repository: Optional[SnapshotRepository] = None,
        default_window_minutes: Optional[int] = None,
        time_slice_minutes: Optional[int] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.repository = repository
        self.default_window_minutes = default_window_minutes or settings.DEFAULT_WINDOW_MINUTES
        self.time_slice_minutes = time_slice_minutes or settings.TIME_SLICE_MINUTES
        self.clock = clock

        self._view = self._restore_view()

    @property
    def default_span_ms(self) -> int:
        return self.default_window_minutes * MS_PER_MINUTE

    def _restore_view(self) -> CurrentView:
        if self.repository is not None:
            view = self.repository.load_window()
            if view is not None:
                return view
        return CurrentView(time_range=TimeRange.trailing(self.clock(), self.default_span_ms))

    def _save_view(self) -> None:
        if self.repository is not None:
            self.repository.save_window(self._view)

    # ==================== View ====================

    @property
    def current_view(self) -> CurrentView:
        return self._view

    @property
    def current_range(self) -> TimeRange:
        return self._view.time_range

    @property
    def user_controlled(self) -> bool:
        return self._view.user_controlled

    @property
    def active_types(self) -> set:
        return set(self._view.active_types)

    # ==================== Navigation ====================

    def travel_to_range(self, time_range: TimeRange) -> list[MediaItem]:
        """
        Make ``time_range`` the current window.

        Returns:
            Items of the active types inside the new window, newest-first
        """
        self._view.time_range = time_range
        self._view.user_controlled = True
        self._save_view()

        items = self.store.query_range(time_range, self._view.active_types)
        logger.info(
            f"[TimeNavigator] Traveled to {time_range.start}-{time_range.end}: {len(items)} items"
        )
        return items

    def travel_to_timestamp(
        self, timestamp: int, span_minutes: Optional[int] = None
    ) -> list[MediaItem]:
        """Center a window of ``span_minutes`` (default: the time slice) on ``timestamp``."""
        span_minutes = span_minutes or self.time_slice_minutes
        half_span = span_minutes * MS_PER_MINUTE // 2
        time_range = TimeRange(start=timestamp - half_span, end=timestamp + half_span)

        if span_minutes != self.time_slice_minutes:
            # A custom span is a deliberate window choice
            self._view.user_controlled = True

        return self.travel_to_range(time_range)

    def travel_by(self, minutes: int) -> list[MediaItem]:
        """Shift the window by ``minutes`` (negative goes back in time)."""
        return self.travel_to_range(self.current_range.shifted(minutes * MS_PER_MINUTE))

    def travel_backwards(self, minutes: int) -> list[MediaItem]:
        return self.travel_by(-abs(minutes))

    def travel_forwards(self, minutes: int) -> list[MediaItem]:
        return self.travel_by(abs(minutes))

    def jump_to_now(self) -> list[MediaItem]:
        """Trailing window ending now, keeping the user's span if they picked one."""
        span = self.current_range.span if self._view.user_controlled else self.default_span_ms
        time_range = TimeRange.trailing(self.clock(), span)

        self._view.time_range = time_range
        self._save_view()

        items = self.store.query_range(time_range, self._view.active_types)
        logger.info(
            f"[TimeNavigator] Jumped to now ({span // MS_PER_MINUTE} min window): {len(items)} items"
        )
        return items

    def set_active_types(self, types: Iterable[MediaType]) -> list[MediaItem]:
        """Replace the active media-type filter. An empty selection is ignored."""
        types = set(types)
        if not types:
            logger.info("[TimeNavigator] Ignoring empty media type selection")
        else:
            self._view.active_types = types
            self._save_view()
            logger.info(
                f"[TimeNavigator] Active media types: {', '.join(sorted(t.value for t in types))}"
            )
        return self.get_current_media()

    # ==================== Reads ====================

    def get_current_media(self) -> list[MediaItem]:
        """Items of the active types in the current window."""
        return self.store.query_range(self.current_range, self._view.active_types)

    def histogram(self, bucket_minutes: Optional[int] = None) -> list[TimeBucket]:
        return self.store.time_buckets(bucket_minutes)
