"""Observer list with per-observer failure isolation."""

from typing import Callable, Generic, TypeVar

from src.utils.logger import logger

T = TypeVar("T")


class ObserverList(Generic[T]):
    """
    Ordered set of callbacks notified with one payload.

    A callback that raises is logged and skipped; remaining callbacks are
    still notified.
    """

    def __init__(self, name: str = "observers"):
        self.name = name
        self._callbacks: list[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            A function that unregisters the callback (safe to call twice)
        """
        self._callbacks.append(callback)

        def unsubscribe():
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: Callable[[T], None]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def notify(self, payload: T) -> int:
        """
        Invoke every callback with ``payload``.

        Returns:
            Number of callbacks that completed without raising
        """
        delivered = 0
        # Copy so callbacks may unsubscribe while being notified
        for callback in list(self._callbacks):
            try:
                callback(payload)
                delivered += 1
            except Exception as e:
                logger.error(f"[{self.name}] Observer {callback!r} failed: {e}", exc_info=True)
        return delivered

    def clear(self) -> None:
        self._callbacks.clear()

    def __len__(self) -> int:
        return len(self._callbacks)
