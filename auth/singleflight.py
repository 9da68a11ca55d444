"""
auth/singleflight.py -- At most one execution of an operation at a time.

A mutex plus an in-flight Future. The first caller (the leader) runs the
operation; callers arriving while it runs either fail fast with
InFlightError or, when wait_for_inflight is set, block on the leader's
Future and receive the same result or exception.

The in-flight slot is cleared under the mutex before the Future resolves,
so a caller arriving after completion always starts a fresh run and no
waiter can miss the wake-up.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class InFlightError(RuntimeError):
    """Raised to callers that arrive while the operation is already running."""


class SingleFlight(Generic[T]):
    def __init__(self, wait_for_inflight: bool = False) -> None:
        self.wait_for_inflight = wait_for_inflight
        self._lock = threading.Lock()
        self._inflight: Optional[Future] = None
        self._waiting = 0

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._inflight is not None

    @property
    def waiting(self) -> int:
        """Number of callers currently blocked on the in-flight run."""
        with self._lock:
            return self._waiting

    def run(self, fn: Callable[[], T]) -> T:
        with self._lock:
            future = self._inflight
            if future is None:
                future = self._inflight = Future()
                leader = True
            elif not self.wait_for_inflight:
                raise InFlightError("operation already in flight")
            else:
                self._waiting += 1
                leader = False

        if not leader:
            try:
                return future.result()
            finally:
                with self._lock:
                    self._waiting -= 1

        try:
            result = fn()
        except BaseException as exc:
            self._finish()
            future.set_exception(exc)
            raise
        self._finish()
        future.set_result(result)
        return result

    def _finish(self) -> None:
        with self._lock:
            self._inflight = None
