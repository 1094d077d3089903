from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable

from .config import CACHE
from .errors import StorageError
from .models import CacheEntry
from .storage import KeyValueStore, MemoryStore


class CacheStore:
    """
    Memoized results with a fixed TTL, backed by a KeyValueStore.

    Reads check the in-process map first, then the store. A hit increments the entry's hit
    counter and writes it back. Under capacity pressure the entry with the lowest
    hit_count / age is evicted (oldest first on ties), never the key being written.

    Store failures are logged and counted; the in-process map keeps working.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        ttl_s: float = CACHE.ttl_s,
        max_entries: int = CACHE.max_entries,
        max_bytes: int = CACHE.max_bytes,
        key_prefix: str = CACHE.key_prefix,
        clock: Callable[[], float] | None = None,
    ):
        self.store = store if store is not None else MemoryStore()
        self.ttl_s = float(ttl_s)
        self.max_entries = int(max_entries)
        self.max_bytes = int(max_bytes)
        self.key_prefix = key_prefix
        self._clock = clock or time.time
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self.counters: dict[str, int] = {
            "hits": 0,
            "misses": 0,
            "expired": 0,
            "evictions": 0,
            "writes": 0,
            "store_errors": 0,
        }
        self._load_from_store()

    def _skey(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _bump(self, key: str) -> None:
        self.counters[key] = self.counters.get(key, 0) + 1

    # ----------------------------
    # Store access (never raises)
    # ----------------------------

    def _store_call(self, operation: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except (StorageError, OSError, TypeError, ValueError) as e:
            self._bump("store_errors")
            logging.warning(f"[CACHE] Store {operation} failed: {type(e).__name__}: {e}")
            return None

    def _persist(self, entry: CacheEntry) -> None:
        self._store_call("set", lambda: self.store.set(self._skey(entry.key), entry.to_dict()))

    def _unpersist(self, key: str) -> None:
        self._store_call("remove", lambda: self.store.remove(self._skey(key)))

    def _load_from_store(self) -> None:
        keys = self._store_call("keys", self.store.keys) or []
        now = self._clock()
        loaded = 0
        for skey in keys:
            if not skey.startswith(self.key_prefix):
                continue
            entry = CacheEntry.from_dict(self._store_call("get", lambda k=skey: self.store.get(k)))
            if entry is None or entry.is_expired(now):
                self._store_call("remove", lambda k=skey: self.store.remove(k))
                continue
            self._entries[entry.key] = entry
            loaded += 1
        if loaded:
            logging.info(f"[CACHE] Loaded {loaded} entries from store")

    # ----------------------------
    # Public API
    # ----------------------------

    def get(self, key: str) -> dict[str, Any] | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry.from_dict(
                self._store_call("get", lambda: self.store.get(self._skey(key)))
            )
            if entry is not None:
                with self._lock:
                    self._entries[key] = entry
        if entry is None:
            self._bump("misses")
            return None
        if entry.is_expired(now):
            self._bump("expired")
            self._bump("misses")
            self.remove(key)
            return None
        with self._lock:
            entry.hit_count += 1
        self._bump("hits")
        self._persist(entry)
        return entry.payload

    def _score(self, entry: CacheEntry, now: float) -> float:
        return entry.hit_count / max(entry.age_s(now), 1e-3)

    def _pick_victim(self, now: float, *, exclude: str) -> str | None:
        victim: CacheEntry | None = None
        victim_score = 0.0
        for e in self._entries.values():
            if e.key == exclude:
                continue
            score = self._score(e, now)
            if (
                victim is None
                or score < victim_score
                or (score == victim_score and e.created_at < victim.created_at)
            ):
                victim, victim_score = e, score
        return victim.key if victim is not None else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        now = self._clock()
        size = len(json.dumps(value, ensure_ascii=False).encode("utf-8"))
        evicted: list[str] = []
        with self._lock:
            while True:
                others = [e for e in self._entries.values() if e.key != key]
                used = sum(e.size for e in others)
                if len(others) < self.max_entries and used + size <= self.max_bytes:
                    break
                victim = self._pick_victim(now, exclude=key)
                if victim is None:
                    break
                self._entries.pop(victim, None)
                evicted.append(victim)
            entry = CacheEntry(
                key=key,
                payload=value,
                created_at=now,
                hit_count=0,
                size=size,
                ttl_s=self.ttl_s,
            )
            self._entries[key] = entry
        for k in evicted:
            self._bump("evictions")
            logging.debug(f"[CACHE] Evicted {k!r}")
            self._unpersist(k)
        self._bump("writes")
        self._persist(entry)

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
        self._unpersist(key)

    def clear(self) -> int:
        with self._lock:
            keys = list(self._entries.keys())
            self._entries.clear()
        for k in keys:
            self._unpersist(k)
        return len(keys)

    def cleanup_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for k in expired:
                self._entries.pop(k, None)
        for k in expired:
            self._unpersist(k)
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entry(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    @property
    def at_capacity(self) -> bool:
        return len(self) >= self.max_entries

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        with self._lock:
            entries = list(self._entries.values())
        oldest = min((e.created_at for e in entries), default=None)
        return {
            "size": len(entries),
            "max_entries": self.max_entries,
            "total_bytes": sum(e.size for e in entries),
            "total_hits": sum(e.hit_count for e in entries),
            "oldest_age_s": round(now - oldest, 1) if oldest is not None else None,
            **self.counters,
        }

    def format_stats(self) -> str:
        s = self.stats()
        return (
            f"cache size={s['size']}/{s['max_entries']} "
            f"hits={s['hits']} misses={s['misses']} "
            f"evictions={s['evictions']} store_errors={s['store_errors']}"
        )
