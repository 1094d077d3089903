from __future__ import annotations

import json
import logging
import random
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, TypeVar

import pandas as pd
import requests

from ..config import RATE_LIMIT, RETRY
from ..errors import NetworkError, RateLimitError, RequestCancelledError

T = TypeVar("T")

# ----------------------------
# JSON files
# ----------------------------


def load_json_cache(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logging.warning(f"[CACHE] Ignoring unreadable JSON file '{p.name}': {e}")
        return {}
    if not isinstance(data, dict):
        logging.warning(f"[CACHE] Ignoring JSON file '{p.name}': expected an object")
        return {}
    return data


def save_json_cache(cache: dict[str, Any], path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    # Write to a sibling file first so a crash never leaves a truncated cache behind.
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(json.dumps(cache, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(p)


@dataclass
class CacheIOTracker:
    """
    Track JSON load/save counts and time in milliseconds.
    """

    stats: dict[str, Any]
    prefix: str = "cache"

    def __post_init__(self) -> None:
        self.stats.setdefault(f"{self.prefix}_load_count", 0)
        self.stats.setdefault(f"{self.prefix}_load_ms", 0)
        self.stats.setdefault(f"{self.prefix}_save_count", 0)
        self.stats.setdefault(f"{self.prefix}_save_ms", 0)

    def _add(self, key: str, value: int) -> None:
        self.stats[key] = int(self.stats.get(key, 0) or 0) + value

    def load_json(self, path: str | Path) -> dict[str, Any]:
        t0 = time.perf_counter()
        raw = load_json_cache(path)
        t1 = time.perf_counter()
        self._add(f"{self.prefix}_load_count", 1)
        self._add(f"{self.prefix}_load_ms", int(round((t1 - t0) * 1000.0)))
        return raw

    def save_json(self, cache: dict[str, Any], path: str | Path) -> None:
        t0 = time.perf_counter()
        save_json_cache(cache, path)
        t1 = time.perf_counter()
        self._add(f"{self.prefix}_save_count", 1)
        self._add(f"{self.prefix}_save_ms", int(round((t1 - t0) * 1000.0)))

    @staticmethod
    def format_io(stats: dict[str, Any] | None, *, prefix: str = "cache") -> str:
        if not stats:
            return f"{prefix} load_ms=0 saves=0 save_ms=0"
        load_ms = int(stats.get(f"{prefix}_load_ms", 0) or 0)
        save_count = int(stats.get(f"{prefix}_save_count", 0) or 0)
        save_ms = int(stats.get(f"{prefix}_save_ms", 0) or 0)
        return f"{prefix} load_ms={load_ms} saves={save_count} save_ms={save_ms}"


def read_csv(path: str | Path) -> pd.DataFrame:
    """Read CSV preserving strings and avoiding problematic type inference."""
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def write_csv(df: pd.DataFrame, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


def iter_chunks(items: list[Any], chunk_size: int) -> list[list[Any]]:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    if not items:
        return []
    return [items[i : i + chunk_size] for i in range(0, len(items), chunk_size)]


# ----------------------------
# Rate limiting + retries
# ----------------------------


class RateLimiter:
    """
    Token bucket: `capacity` calls, refilled to full once `window_s` has elapsed since the
    last refill.

    `clock` and `sleep` default to `time.monotonic` / `time.sleep`.
    """

    def __init__(
        self,
        capacity: int = RATE_LIMIT.capacity,
        window_s: float = RATE_LIMIT.window_s,
        *,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = int(capacity)
        self.window_s = float(window_s)
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._lock = threading.Lock()
        self._tokens = self.capacity
        self._refilled_at = self._clock()
        self.waits = 0

    def _refill(self, now: float) -> None:
        if now - self._refilled_at >= self.window_s:
            self._tokens = self.capacity
            self._refilled_at = now

    @property
    def available(self) -> int:
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    def try_acquire(self) -> bool:
        with self._lock:
            self._refill(self._clock())
            if self._tokens > 0:
                self._tokens -= 1
                return True
            return False

    def wait(self) -> None:
        with self._lock:
            while True:
                now = self._clock()
                self._refill(now)
                if self._tokens > 0:
                    self._tokens -= 1
                    return
                self.waits += 1
                self._sleep(max(self._refilled_at + self.window_s - now, 0.0))


def _bump(stats: dict[str, Any] | None, key: str, value: int = 1) -> None:
    if stats is None:
        return
    stats[key] = int(stats.get(key, 0) or 0) + value


class RetryPolicy:
    """
    Retry with exponential backoff, tracked per logical key.

    Retriable: NetworkError with a retriable status, RateLimitError, and requests transport
    errors (connection failures, timeouts). Everything else propagates immediately.

    The delay before retry N (0-based) is min(base * 2**N, max_delay), raised to the
    Retry-After of a RateLimitError (still capped), plus 0..jitter_ratio of itself.
    """

    def __init__(
        self,
        *,
        max_retries: int = RETRY.max_retries,
        base_delay_s: float = RETRY.base_delay_s,
        max_delay_s: float = RETRY.max_delay_s,
        jitter_ratio: float = RETRY.jitter_ratio,
        sleep: Callable[[float], None] | None = None,
        stats: dict[str, Any] | None = None,
    ):
        self.max_retries = int(max_retries)
        self.base_delay_s = float(base_delay_s)
        self.max_delay_s = float(max_delay_s)
        self.jitter_ratio = float(jitter_ratio)
        self._sleep = sleep or time.sleep
        self.stats = stats
        self._attempts: dict[str, int] = {}
        self._lock = threading.Lock()

    @staticmethod
    def is_retriable(exc: BaseException) -> bool:
        if isinstance(exc, RateLimitError):
            return True
        if isinstance(exc, NetworkError):
            return exc.retriable
        return isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout))

    def compute_delay(self, attempt: int, exc: BaseException | None = None) -> float:
        delay = min(self.base_delay_s * (2**attempt), self.max_delay_s)
        if isinstance(exc, RateLimitError) and exc.retry_after_s > 0:
            delay = min(max(delay, exc.retry_after_s), self.max_delay_s)
        return delay + delay * random.uniform(0, self.jitter_ratio)

    def attempts(self, key: str) -> int:
        with self._lock:
            return self._attempts.get(key, 0)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._attempts.clear()
            else:
                self._attempts.pop(key, None)

    def _set_attempts(self, key: str, value: int) -> None:
        with self._lock:
            self._attempts[key] = value

    def execute(
        self,
        key: str,
        fn: Callable[[], T],
        *,
        cancel_event: threading.Event | None = None,
        context: str | None = None,
    ) -> T:
        attempt = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                self.reset(key)
                raise RequestCancelledError(f"Request cancelled: {context or key}")
            try:
                result = fn()
            except Exception as e:
                if isinstance(e, RateLimitError):
                    _bump(self.stats, "rate_limited")
                if not self.is_retriable(e) or attempt >= self.max_retries:
                    self.reset(key)
                    if attempt > 0:
                        _bump(self.stats, "retry_exhausted")
                    self._log_failure(e, context or key, attempt)
                    raise
                delay = self.compute_delay(attempt, e)
                attempt += 1
                self._set_attempts(key, attempt)
                _bump(self.stats, "retry_attempts")
                _bump(self.stats, "retry_backoff_ms", int(round(delay * 1000.0)))
                logging.info(
                    f"[RETRY] {context or key}: {type(e).__name__}; retry {attempt}/{self.max_retries} "
                    f"in {delay:.1f}s"
                )
                if cancel_event is not None:
                    if cancel_event.wait(delay):
                        self.reset(key)
                        raise RequestCancelledError(f"Request cancelled: {context or key}") from e
                else:
                    self._sleep(delay)
                continue
            self.reset(key)
            return result

    @staticmethod
    def _log_failure(exc: BaseException, context: str, retries: int) -> None:
        if isinstance(exc, RateLimitError):
            tag = "RATE_LIMIT"
        elif isinstance(exc, (NetworkError, requests.exceptions.RequestException)):
            tag = "NETWORK"
        else:
            tag = "REQUEST"
        logging.warning(f"[{tag}] {context}: {type(exc).__name__}: {exc} (after {retries} retries)")
