"""Relay (upstream Nostr network) related exceptions."""

from typing import Optional

from src.exceptions.base import ObservatoryError


class RelayError(ObservatoryError):
    """
    General relay communication error.

    Attributes:
        message: Human-readable error description
        relay_url: Websocket URL of the relay involved, if a single one
    """

    def __init__(self, message: str, relay_url: Optional[str] = None):
        super().__init__(message)
        self.relay_url = relay_url

    def __str__(self) -> str:
        base = super().__str__()
        if self.relay_url:
            return f"{base} (relay: {self.relay_url})"
        return base


class RelayTimeoutError(RelayError):
    """
    Relay did not answer within the allowed time.

    Raised by a relay pool query when every relay failed by timing out.
    Treated as transient.
    """

    def __init__(self, message: str = "Relay query timed out", **kwargs):
        super().__init__(message, **kwargs)


class RelayConnectionError(RelayError):
    """
    No relay could be reached.

    Raised by a relay pool query when every configured relay failed to
    connect or dropped the connection before answering.
    """

    def __init__(self, message: str = "Could not reach any relay", **kwargs):
        super().__init__(message, **kwargs)
