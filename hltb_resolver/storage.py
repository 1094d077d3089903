from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol

from .errors import StorageError
from .utils.utilities import CacheIOTracker

DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_MAX_ITEMS = 100_000


class KeyValueStore(Protocol):
    """Host persistent store backing CacheStore. Values must be JSON-serializable."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def keys(self) -> list[str]: ...


def _json_size(value: Any) -> int:
    return len(json.dumps(value, ensure_ascii=False).encode("utf-8"))


class MemoryStore:
    """In-process store with the same quota behavior as JSONFileStore."""

    def __init__(self, *, max_bytes: int = DEFAULT_MAX_BYTES, max_items: int = DEFAULT_MAX_ITEMS):
        self.max_bytes = int(max_bytes)
        self.max_items = int(max_items)
        self._data: dict[str, Any] = {}
        self._sizes: dict[str, int] = {}
        self._lock = threading.Lock()

    def _check_quota(self, key: str, size: int) -> None:
        items = len(self._data) + (0 if key in self._data else 1)
        if items > self.max_items:
            raise StorageError(f"Item quota exceeded ({self.max_items})", operation="set")
        total = sum(self._sizes.values()) - self._sizes.get(key, 0) + size
        if total > self.max_bytes:
            raise StorageError(f"Byte quota exceeded ({total} > {self.max_bytes})", operation="set")

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        size = _json_size(value)
        with self._lock:
            self._check_quota(key, size)
            self._data[key] = value
            self._sizes[key] = size

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)
            self._sizes.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._sizes.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data.keys())

    def bytes_used(self) -> int:
        with self._lock:
            return sum(self._sizes.values())


class JSONFileStore(MemoryStore):
    """
    Store persisted as a single JSON object on disk.

    Every mutation rewrites the file. An unreadable file is logged and treated as empty.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        max_items: int = DEFAULT_MAX_ITEMS,
    ):
        super().__init__(max_bytes=max_bytes, max_items=max_items)
        self.path = Path(path)
        self.stats: dict[str, Any] = {}
        self._io = CacheIOTracker(self.stats, prefix="store")
        for k, v in self._io.load_json(self.path).items():
            self._data[str(k)] = v
            self._sizes[str(k)] = _json_size(v)

    def _persist(self, operation: str) -> None:
        try:
            self._io.save_json(dict(self._data), self.path)
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}", operation=operation) from e

    def set(self, key: str, value: Any) -> None:
        super().set(key, value)
        with self._lock:
            self._persist("set")

    def remove(self, key: str) -> None:
        super().remove(key)
        with self._lock:
            self._persist("remove")

    def clear(self) -> None:
        super().clear()
        with self._lock:
            self._persist("clear")
        logging.info(f"[CACHE] Cleared {self.path.name}")
