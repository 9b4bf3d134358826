# file: signals.py

"""
Counting completion signals and cooperative cancellation tokens.

A ``CompletionSignal`` represents "task X has finished" for exactly one
(producer, consumer) edge. ``release`` makes exactly one future ``acquire``
succeed; it is a counter, not a broadcast event, so one signal must never be
shared by several consumers.

``CancelToken`` is the per-worker cancellation handle. Signals blocked on a
token are woken as soon as it is cancelled, which is how a worker parked on a
predecessor that will never finish can be interrupted.
"""

import logging
import threading
import time
from typing import Callable, List, Optional

from .exceptions import TaskInterrupted

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation handle shared by a worker and its task body."""

    def __init__(self, name: str = None):
        self.name = name
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> bool:
        """Request cancellation.

        Returns:
            True if this call cancelled the token, False if it already was.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            callbacks = list(self._callbacks)

        for callback in callbacks:
            callback()
        return True

    def add_callback(self, callback: Callable[[], None]):
        """Register ``callback`` to run on cancellation.

        If the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]):
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def wait(self, seconds: Optional[float] = None) -> bool:
        """Sleep up to ``seconds``, waking early on cancellation.

        Returns:
            True if the token was cancelled, False if the time elapsed.
        """
        return self._event.wait(seconds)

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise TaskInterrupted(f"{self.name or 'worker'}: {self.reason}")

    def __repr__(self) -> str:
        state = f"cancelled={self.reason!r}" if self.cancelled else "active"
        return f"CancelToken({self.name!r}, {state})"


class CompletionSignal:
    """
    Counting semaphore with initial value 0.

    Example:
        signal = CompletionSignal(producer=0, consumer=2)

        # producer thread
        signal.release()

        # consumer thread, blocks until released
        signal.acquire(token)
    """

    def __init__(self, producer: Optional[int] = None, consumer: Optional[int] = None):
        self.producer = producer
        self.consumer = consumer
        self._value = 0
        self._cond = threading.Condition(threading.Lock())
        self.release_count = 0
        self.acquire_count = 0

    @property
    def value(self) -> int:
        with self._cond:
            return self._value

    def release(self):
        """Add one unit of availability and wake one waiter. Never blocks."""
        with self._cond:
            self._value += 1
            self.release_count += 1
            self._cond.notify()
        logger.debug(f"Signal {self.producer}->{self.consumer} released")

    def acquire(self, token: Optional[CancelToken] = None):
        """
        Block until the counter is positive, then decrement it.

        Raises:
            TaskInterrupted: If ``token`` is cancelled (checked before
                consuming, so the counter is left untouched).
        """
        self._acquire(token, deadline=None)

    def try_acquire(self, timeout: float, token: Optional[CancelToken] = None) -> bool:
        """Like ``acquire`` but give up after ``timeout`` seconds.

        Returns:
            True if a unit was consumed, False on timeout.
        """
        return self._acquire(token, deadline=time.monotonic() + timeout)

    def _acquire(self, token: Optional[CancelToken], deadline: Optional[float]) -> bool:
        wake = None
        if token is not None:

            def wake():
                with self._cond:
                    self._cond.notify_all()

            token.add_callback(wake)

        try:
            with self._cond:
                while True:
                    # Cancellation wins over an available unit
                    if token is not None and token.cancelled:
                        raise TaskInterrupted(
                            f"Interrupted while waiting on signal "
                            f"{self.producer}->{self.consumer}: {token.reason}"
                        )
                    if self._value > 0:
                        break
                    if deadline is None:
                        self._cond.wait()
                    else:
                        remaining = deadline - time.monotonic()
                        if remaining <= 0:
                            return False
                        self._cond.wait(remaining)
                self._value -= 1
                self.acquire_count += 1
                return True
        finally:
            if wake is not None:
                token.remove_callback(wake)

    def __repr__(self) -> str:
        return (
            f"CompletionSignal({self.producer}->{self.consumer}, "
            f"value={self._value}, releases={self.release_count})"
        )
