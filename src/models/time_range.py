"""Time window models - ranges, the current view and histogram buckets."""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from src.models.media_item import MediaType, parse_media_type


@dataclass(frozen=True)
class TimeRange:
    """Inclusive ``[start, end]`` window in epoch milliseconds.

    ``start <= end`` by convention; not enforced.
    """

    start: int
    end: int

    @property
    def span(self) -> int:
        return self.end - self.start

    def contains(self, timestamp: int) -> bool:
        return self.start <= timestamp <= self.end

    def shifted(self, offset_ms: int) -> "TimeRange":
        return TimeRange(start=self.start + offset_ms, end=self.end + offset_ms)

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: dict) -> "TimeRange":
        return cls(start=int(data["start"]), end=int(data["end"]))

    @classmethod
    def trailing(cls, now_ms: int, span_ms: int) -> "TimeRange":
        """Window of ``span_ms`` ending at ``now_ms``."""
        return cls(start=now_ms - span_ms, end=now_ms)


@dataclass
class CurrentView:
    """
    What the viewer is currently looking at.

    Mutated only by the time navigator; ingestion never touches it.

    Attributes:
        time_range: Active window
        user_controlled: True once the viewer explicitly picked a window or
            position instead of accepting the default trailing window
        active_types: Media types shown by "current media" queries
    """

    time_range: TimeRange
    user_controlled: bool = False
    active_types: set = field(default_factory=lambda: {MediaType.IMAGE})

    def to_dict(self, saved_at: Optional[int] = None) -> dict:
        """Serialize to the window-settings file shape."""
        data = {
            "currentTimeRange": self.time_range.to_dict(),
            "isUserControlledWindow": self.user_controlled,
            "activeMediaTypes": sorted(t.value for t in self.active_types),
        }
        if saved_at is not None:
            data["timestamp"] = saved_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CurrentView":
        """Restore from window settings; ``activeMediaTypes`` is optional."""
        view = cls(
            time_range=TimeRange.from_dict(data["currentTimeRange"]),
            user_controlled=bool(data.get("isUserControlledWindow", False)),
        )
        raw_types = data.get("activeMediaTypes")
        if raw_types:
            view.active_types = set(parse_media_types(raw_types))
        return view


def parse_media_types(values: Iterable) -> list[MediaType]:
    """Parse a list of type names, dropping duplicates and keeping order."""
    result: list[MediaType] = []
    for value in values:
        media_type = parse_media_type(value)
        if media_type not in result:
            result.append(media_type)
    return result


@dataclass(frozen=True)
class TimeBucket:
    """One histogram bucket for the time scrubber."""

    start: int
    end: int
    count: int
    label: str

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "count": self.count,
            "label": self.label,
        }
