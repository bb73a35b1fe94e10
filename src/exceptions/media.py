"""Media archive related exceptions."""

from typing import Optional

from src.exceptions.base import ObservatoryError


class InvalidMediaItemError(ObservatoryError):
    """
    A media item is missing a required field or carries an unusable value.

    Attributes:
        field: Name of the offending field (e.g. 'url', 'type')
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def __str__(self) -> str:
        base = super().__str__()
        if self.field:
            return f"{base} (field: {self.field})"
        return base


class SnapshotError(ObservatoryError):
    """
    Snapshot file could not be read or written.

    Attributes:
        path: Snapshot file path involved
    """

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        base = super().__str__()
        if self.path:
            return f"{base} (path: {self.path})"
        return base
