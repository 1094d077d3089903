"""Utility functions and helpers."""

from .utilities import (
    CacheIOTracker,
    RateLimiter,
    RetryPolicy,
    iter_chunks,
    load_json_cache,
    read_csv,
    save_json_cache,
    write_csv,
)

__all__ = [
    "CacheIOTracker",
    "RateLimiter",
    "RetryPolicy",
    "iter_chunks",
    "load_json_cache",
    "read_csv",
    "save_json_cache",
    "write_csv",
]
