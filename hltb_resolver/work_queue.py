from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, TypeVar

from .utils.utilities import RateLimiter

T = TypeVar("T")


class WorkQueue:
    """
    Single-worker queue shared by every caller that needs outbound I/O.

    Tasks run one at a time in submission order. When a rate limiter is given, each task
    waits for a token before it starts; clients that hold the same limiter also spend one
    token per HTTP request.
    """

    def __init__(self, ratelimiter: RateLimiter | None = None, *, name: str = "hltb-outbound"):
        self.ratelimiter = ratelimiter
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._pending = 0
        self.completed = 0

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def _wrap(self, fn: Callable[[], T]) -> Callable[[], T]:
        def _task() -> T:
            try:
                if self.ratelimiter is not None:
                    self.ratelimiter.wait()
                return fn()
            finally:
                with self._lock:
                    self._pending -= 1
                    self.completed += 1

        return _task

    def submit(self, fn: Callable[[], T]) -> Future[T]:
        with self._lock:
            self._pending += 1
        try:
            return self._executor.submit(self._wrap(fn))
        except RuntimeError:
            with self._lock:
                self._pending -= 1
            raise

    def run(self, fn: Callable[[], T], *, timeout_s: float | None = None) -> T:
        """Submit and block for the result; exceptions from `fn` are re-raised here."""
        return self.submit(fn).result(timeout=timeout_s)

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
