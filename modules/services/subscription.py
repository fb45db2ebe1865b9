"""Open/close lifecycle shared by auth and history listeners."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Subscription(Generic[T]):
    """A single listener with one delivery callback and an optional error callback.

    Deliveries made before ``open()`` or after ``close()`` are dropped, so a
    torn-down listener can never mutate its owner again.
    """

    def __init__(
        self,
        callback: Callable[[T], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        name: str = "subscription",
    ) -> None:
        self.name = name
        self._callback = callback
        self._on_error = on_error
        self._teardown: Optional[Callable[[], None]] = None
        self._health_check: Optional[Callable[[], Optional[Exception]]] = None
        self._stalled = False
        self._lock = threading.Lock()
        self._opened = False
        self._closed = False

    @property
    def active(self) -> bool:
        return self._opened and not self._closed

    def open(self, teardown: Optional[Callable[[], None]] = None) -> "Subscription[T]":
        """Mark the listener live; ``teardown`` runs once on close."""
        with self._lock:
            if self._closed:
                raise RuntimeError(f"{self.name} is already closed")
            self._teardown = teardown
            self._opened = True
        return self

    def set_teardown(self, teardown: Callable[[], None]) -> None:
        """Attach the release hook once the underlying listener exists.

        Runs it at once if the subscription was closed in the meantime.
        """
        with self._lock:
            if not self._closed:
                self._teardown = teardown
                return
        teardown()

    def set_health_check(self, check: Callable[[], Optional[Exception]]) -> None:
        """Attach a check that returns an error once the underlying listener died on its own."""
        with self._lock:
            self._health_check = check

    def poll(self) -> bool:
        """Run the health check; a dead listener is reported through ``fail`` once.

        Returns False when the subscription is no longer delivering.
        """
        with self._lock:
            check = self._health_check if self.active else None
            if check is None:
                return self.active and not self._stalled
        error = check()
        if error is None:
            return True
        with self._lock:
            if self._health_check is not check:
                return False
            self._health_check = None
            self._stalled = True
        logger.error("%s stopped unexpectedly: %s", self.name, error)
        self.fail(error)
        return False

    def deliver(self, value: T) -> bool:
        """Forward ``value`` to the callback. Returns False when dropped."""
        if not self.active:
            return False
        self._callback(value)
        return True

    def fail(self, error: Exception) -> bool:
        if not self.active:
            return False
        if self._on_error is None:
            logger.error("%s error with no handler: %s", self.name, error)
        else:
            self._on_error(error)
        return True

    def close(self) -> None:
        """Stop deliveries and release the underlying listener. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            teardown, self._teardown = self._teardown, None
            self._health_check = None
        if teardown is not None:
            teardown()
