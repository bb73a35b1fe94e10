"""Nostr Media Observatory exception classes."""

from src.exceptions.base import ObservatoryError
from src.exceptions.media import InvalidMediaItemError, SnapshotError
from src.exceptions.relay import (
    RelayError,
    RelayTimeoutError,
    RelayConnectionError,
)

__all__ = [
    "ObservatoryError",
    "InvalidMediaItemError",
    "SnapshotError",
    "RelayError",
    "RelayTimeoutError",
    "RelayConnectionError",
]
