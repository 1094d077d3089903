from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Iterable

import requests

from .cache import CacheStore
from .clients.hltb_api_client import HLTBApiClient
from .clients.hltb_scraper import HLTBScraper
from .config import BATCH, HEALTH, MATCHING, RATE_LIMIT, REQUEST
from .dataset import StaticDataset
from .errors import RequestCancelledError, ValidationError
from .matching.matcher import SKIP_REASON, TitleMatcher
from .matching.normalize import normalize
from .matching.overrides import load_override_tables
from .models import BatchItem, MatchResult, ResolvedGameData, SearchOptions, ServiceStats
from .storage import JSONFileStore, KeyValueStore, MemoryStore
from .utils.utilities import RateLimiter, iter_chunks
from .work_queue import WorkQueue

_SOURCE_LABELS = {"api": "API", "scraper": "Scraper", "fallback": "Fallback dataset"}


def _rate(num: int, den: int) -> str:
    if den <= 0:
        return "N/A"
    return f"{num / den * 100:.1f}%"


def validate_request(title: Any, platform_id: Any = None) -> tuple[str, str | None]:
    """Return (title, platform_id) cleaned, or raise ValidationError."""
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title must be a non-empty string", field="title")
    title = title.strip()
    if len(title) > MATCHING.max_title_len:
        raise ValidationError(
            f"title is too long ({len(title)} > {MATCHING.max_title_len} chars)", field="title"
        )
    if platform_id is None:
        return title, None
    if isinstance(platform_id, bool) or not isinstance(platform_id, (str, int)):
        raise ValidationError("platform_id must be a string of digits", field="platform_id")
    pid = str(platform_id).strip()
    if not pid:
        return title, None
    if not pid.isdigit():
        raise ValidationError(f"platform_id must be digits only: {pid!r}", field="platform_id")
    return title, pid


def cache_key(title: str, platform_id: str | None = None) -> str:
    if platform_id:
        return f"id:{platform_id}"
    norm = normalize(title, "standard").replace(" ", "_")
    return f"title:{norm or title.strip()}"


class HLTBService:
    """
    Resolve a title to completion times: cache, then API, scraper and static dataset.

    Everything past the cache read runs as one task on the shared WorkQueue. A failing
    source is logged and counted, and the next one is tried; callers only see
    ValidationError for malformed input, otherwise a result or None.
    """

    def __init__(
        self,
        *,
        matcher: TitleMatcher,
        cache: CacheStore,
        queue: WorkQueue,
        api: HLTBApiClient | None = None,
        scraper: HLTBScraper | None = None,
        dataset: StaticDataset | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.matcher = matcher
        self.cache = cache
        self.queue = queue
        self.api = api
        self.scraper = scraper
        self.dataset = dataset
        self._clock = clock or time.perf_counter
        self._sleep = sleep or time.sleep
        self._lock = threading.Lock()
        self.stats = ServiceStats()

    # ----------------------------
    # Stats
    # ----------------------------

    def _elapsed_ms(self, t0: float) -> int:
        return int(round((self._clock() - t0) * 1000.0))

    def _finish(self, t0: float, data: ResolvedGameData | None) -> ResolvedGameData | None:
        elapsed = self._elapsed_ms(t0)
        with self._lock:
            self.stats.record_latency(elapsed)
            if data is None:
                self.stats.not_found += 1
        if data is not None:
            data.retrieval_ms = elapsed
        return data

    def _record_attempt(self, source: str, success: bool) -> None:
        with self._lock:
            s = self.stats.sources[source]
            s.attempts += 1
            if success:
                s.successes += 1
                s.consecutive_failures = 0
            else:
                s.consecutive_failures += 1

    # ----------------------------
    # Sources
    # ----------------------------

    @staticmethod
    def _from_match(title: str, match: MatchResult | None, source: str) -> ResolvedGameData | None:
        if match is None or match.skip or match.candidate is None:
            return None
        return ResolvedGameData.from_candidate(title, match.candidate, source=source, match=match)

    def _try_api(self, title: str, options: SearchOptions) -> ResolvedGameData | None:
        if self.api is None:
            return None
        match = self.api.find_match(title, timeout_s=options.timeout_s, cancel_event=options.cancel_event)
        return self._from_match(title, match, "api")

    def _try_scraper(self, title: str, options: SearchOptions) -> ResolvedGameData | None:
        if self.scraper is None:
            return None
        match = self.scraper.find_match(
            title, timeout_s=options.timeout_s, cancel_event=options.cancel_event
        )
        return self._from_match(title, match, "scraper")

    def _try_fallback(self, title: str, options: SearchOptions) -> ResolvedGameData | None:
        if self.dataset is None:
            return None
        hit = self.dataset.search(title)
        if hit is None:
            return None
        data = ResolvedGameData.from_candidate(title, hit.entry.to_candidate(), source="fallback")
        data.reason = f"{hit.method} match in local dataset ({hit.entry.confidence} confidence)"
        return data

    def _sources(self, options: SearchOptions) -> list[tuple[str, Callable[[str, SearchOptions], Any]]]:
        out: list[tuple[str, Callable[[str, SearchOptions], Any]]] = []
        if self.api is not None and not options.skip_api:
            out.append(("api", self._try_api))
        if self.scraper is not None and not options.skip_scraping:
            out.append(("scraper", self._try_scraper))
        if self.dataset is not None and not options.skip_fallback:
            out.append(("fallback", self._try_fallback))
        return out

    def _acquire(self, title: str, options: SearchOptions) -> ResolvedGameData | None:
        for name, fetch in self._sources(options):
            if options.cancelled:
                raise RequestCancelledError(f"Lookup cancelled: {title!r}")
            try:
                data = fetch(title, options)
            except RequestCancelledError:
                raise
            except Exception as e:
                logging.warning(f"[HLTB] {_SOURCE_LABELS[name]} failed for {title!r}: {type(e).__name__}: {e}")
                data = None
            self._record_attempt(name, data is not None)
            if data is not None:
                return data
        return None

    def _from_cache(self, key: str, payload: Any) -> ResolvedGameData | None:
        try:
            return ResolvedGameData.from_dict(payload)
        except (TypeError, AttributeError) as e:
            logging.warning(f"[CACHE] Dropping unreadable entry {key!r}: {e}")
            self.cache.remove(key)
            return None

    # ----------------------------
    # Public API
    # ----------------------------

    def get_game_data(
        self,
        title: str,
        platform_id: str | int | None = None,
        options: SearchOptions | None = None,
    ) -> ResolvedGameData | None:
        title, pid = validate_request(title, platform_id)
        options = options or SearchOptions()
        t0 = self._clock()
        with self._lock:
            self.stats.total_requests += 1

        if self.matcher.should_skip(title):
            with self._lock:
                self.stats.skipped += 1
            return self._finish(
                t0,
                ResolvedGameData(
                    title=title,
                    source="skip_list",
                    confidence="high",
                    match_confidence=1.0,
                    match_method="skip",
                    skip=True,
                    reason=SKIP_REASON,
                ),
            )

        key = cache_key(title, pid)
        if not options.skip_cache:
            cached = self.cache.get(key)
            data = self._from_cache(key, cached) if cached is not None else None
            if data is not None:
                data.cached_from = data.source
                data.source = "cache"
                data.confidence = "low"
                with self._lock:
                    self.stats.cache_hits += 1
                return self._finish(t0, data)

        try:
            data = self.queue.run(lambda: self._acquire(title, options))
        except RequestCancelledError as e:
            logging.info(f"[HLTB] {e}")
            return self._finish(t0, None)

        if data is not None:
            self.cache.set(key, data.to_dict())
        else:
            logging.info(f"[HLTB] No data found for {title!r}")
        return self._finish(t0, data)

    def batch_fetch(
        self,
        items: Iterable[BatchItem | tuple[str, str | None] | str],
        options: SearchOptions | None = None,
        *,
        chunk_size: int = BATCH.chunk_size,
        inter_chunk_delay_s: float = BATCH.inter_chunk_delay_s,
    ) -> dict[str, ResolvedGameData | None]:
        batch: list[BatchItem] = []
        for it in items:
            if isinstance(it, BatchItem):
                batch.append(it)
            elif isinstance(it, tuple):
                batch.append(BatchItem(title=it[0], platform_id=it[1]))
            else:
                batch.append(BatchItem(title=it))

        out: dict[str, ResolvedGameData | None] = {}
        for i, chunk in enumerate(iter_chunks(batch, chunk_size)):
            if i > 0 and inter_chunk_delay_s > 0:
                self._sleep(inter_chunk_delay_s)
            for item in chunk:
                try:
                    out[item.key] = self.get_game_data(item.title, item.platform_id, options)
                except ValidationError as e:
                    logging.warning(f"[HLTB] Skipping invalid batch item {item.key!r}: {e}")
                    out[item.key] = None
        return out

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return self.stats.to_dict()

    def reset_stats(self) -> None:
        with self._lock:
            self.stats = ServiceStats()

    def clear_cache(self) -> int:
        cleared = self.cache.clear()
        logging.info(f"[CACHE] Cleared {cleared} entries")
        return cleared

    def get_diagnostics(self) -> dict[str, Any]:
        with self._lock:
            stats = self.stats.to_dict()
            src = {k: (v.successes, v.attempts) for k, v in self.stats.sources.items()}
            cache_hits, total = self.stats.cache_hits, self.stats.total_requests
        return {
            "service": {
                "stats": stats,
                "success_rates": {
                    "api": _rate(*src["api"]),
                    "scraper": _rate(*src["scraper"]),
                    "fallback": _rate(*src["fallback"]),
                    "cache_hit_rate": _rate(cache_hits, total),
                },
            },
            "cache": self.cache.stats(),
            "fallback": self.dataset.stats() if self.dataset is not None else None,
            "api": dict(self.api.stats) if self.api is not None else None,
            "scraper": dict(self.scraper.stats) if self.scraper is not None else None,
            "queue": {"pending": self.queue.pending, "completed": self.queue.completed},
        }

    def health_check(self) -> dict[str, Any]:
        issues: list[str] = []
        with self._lock:
            for name in ("api", "scraper"):
                s = self.stats.sources[name]
                if s.consecutive_failures >= HEALTH.unresponsive_after:
                    issues.append(
                        f"{_SOURCE_LABELS[name]} is not responding "
                        f"({s.consecutive_failures} attempts without a result)"
                    )
            avg = self.stats.average_retrieval_ms
        if avg > HEALTH.slow_avg_ms:
            issues.append(f"Slow average retrieval time: {avg:.0f}ms")
        if self.cache.at_capacity:
            issues.append(f"Cache is full: {len(self.cache)} entries")
        return {"healthy": not issues, "issues": issues}

    def format_stats(self) -> str:
        s = self.get_stats()
        parts = [
            f"requests={s['total_requests']}",
            f"cache_hits={s['cache_hits']}",
            f"skipped={s['skipped']}",
            f"not_found={s['not_found']}",
        ]
        for name in ("api", "scraper", "fallback"):
            parts.append(f"{name}={s[f'{name}_successes']}/{s[f'{name}_attempts']}")
        parts.append(f"avg_ms={s['average_retrieval_ms']:.0f}")
        return " ".join(parts)

    def close(self) -> None:
        self.queue.shutdown()


def build_service(
    *,
    cache_path: str | Path | None = None,
    store: KeyValueStore | None = None,
    overrides_path: str | Path | None = None,
    dataset_path: str | Path | None = None,
    community_url: str | None = None,
    session: requests.Session | None = None,
    rate_limit_capacity: int = RATE_LIMIT.capacity,
    rate_limit_window_s: float = RATE_LIMIT.window_s,
    timeout_s: float = REQUEST.timeout_s,
) -> HLTBService:
    """Build every component once and wire them together."""
    matcher = TitleMatcher(load_override_tables(overrides_path))
    limiter = RateLimiter(rate_limit_capacity, rate_limit_window_s)
    session = session or requests.Session()

    api = HLTBApiClient(session=session, matcher=matcher, ratelimiter=limiter, timeout_s=timeout_s)
    scraper = HLTBScraper(session=session, matcher=matcher, ratelimiter=limiter, timeout_s=timeout_s)

    dataset = StaticDataset.from_yaml(dataset_path)
    if community_url:
        dataset.load_community(community_url, session=session)

    if store is None:
        store = JSONFileStore(cache_path) if cache_path is not None else MemoryStore()

    return HLTBService(
        matcher=matcher,
        cache=CacheStore(store),
        queue=WorkQueue(),
        api=api,
        scraper=scraper,
        dataset=dataset,
    )
