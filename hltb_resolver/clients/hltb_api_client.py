from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import requests

from ..config import BATCH, HLTB, REQUEST
from ..errors import NetworkError, RateLimitError, ResolverError
from ..matching.matcher import TitleMatcher
from ..matching.normalize import remove_year
from ..models import CandidateRecord, MatchResult
from ..utils.utilities import RateLimiter, RetryPolicy, iter_chunks
from .http_client import HTTPClient
from .parse import as_float, as_int, as_str, seconds_to_hours

# A 2xx response whose body does not have the expected shape. Not retriable.
_MALFORMED_STATUS = 200

_DURATION_FIELDS = ("comp_main", "comp_plus", "comp_100", "comp_all")
_COUNT_FIELDS = ("comp_main_count", "comp_plus_count", "comp_100_count", "comp_all_count")


def _malformed(msg: str) -> NetworkError:
    return NetworkError(f"Unexpected HLTB response: {msg}", status_code=_MALFORMED_STATUS)


@dataclass(frozen=True)
class GameEntry:
    """One element of the search response `data` array, validated."""

    game_id: int
    game_name: str
    game_image: str
    release_world: int | None
    comp_main: float | None
    comp_plus: float | None
    comp_100: float | None
    comp_all: float | None
    counts: dict[str, int]

    @staticmethod
    def parse(raw: Any) -> GameEntry:
        if not isinstance(raw, dict):
            raise _malformed("game entry is not an object")
        game_id = as_int(raw.get("game_id"))
        if game_id is None:
            raise _malformed(f"game_id={raw.get('game_id')!r}")
        name = raw.get("game_name")
        if not isinstance(name, str) or not name.strip():
            raise _malformed(f"game_name missing for game_id={game_id}")
        durations: dict[str, float | None] = {}
        for key in _DURATION_FIELDS:
            value = raw.get(key)
            if value is not None and as_float(value) is None:
                raise _malformed(f"{key}={value!r} for game_id={game_id}")
            durations[key] = as_float(value)
        counts = {k: as_int(raw.get(k)) or 0 for k in _COUNT_FIELDS}
        return GameEntry(
            game_id=game_id,
            game_name=name.strip(),
            game_image=as_str(raw.get("game_image")),
            release_world=as_int(raw.get("release_world")) or None,
            comp_main=durations["comp_main"],
            comp_plus=durations["comp_plus"],
            comp_100=durations["comp_100"],
            comp_all=durations["comp_all"],
            counts=counts,
        )

    def to_candidate(self) -> CandidateRecord:
        return CandidateRecord(
            game_id=self.game_id,
            name=self.game_name,
            main_story=seconds_to_hours(self.comp_main),
            main_extra=seconds_to_hours(self.comp_plus),
            completionist=seconds_to_hours(self.comp_100),
            all_styles=seconds_to_hours(self.comp_all),
            image_url=f"{HLTB.image_base_url}{self.game_image}" if self.game_image else None,
            url=f"{HLTB.base_url}/game/{self.game_id}",
            release_year=self.release_world,
            metadata={"counts": dict(self.counts)},
        )


@dataclass(frozen=True)
class SearchResponse:
    count: int
    data: list[GameEntry]

    @staticmethod
    def parse(raw: Any) -> SearchResponse:
        if not isinstance(raw, dict):
            raise _malformed("body is not an object")
        data = raw.get("data")
        if not isinstance(data, list):
            raise _malformed("'data' is not a list")
        entries = [GameEntry.parse(it) for it in data]
        count = as_int(raw.get("count"))
        return SearchResponse(count=count if count is not None else len(entries), data=entries)


def build_search_payload(term: str, *, size: int = HLTB.page_size) -> dict[str, Any]:
    return {
        "searchType": "games",
        "searchTerms": [t for t in term.split(" ") if t],
        "searchPage": 1,
        "size": size,
        "searchOptions": {
            "games": {
                "userId": 0,
                "platform": "",
                "sortCategory": "popular",
                "rangeCategory": "main",
                "rangeTime": {"min": 0, "max": 0},
                "gameplay": {"perspective": "", "flow": "", "genre": ""},
                "modifier": "",
            },
            "users": {"sortCategory": "postcount"},
            "filter": "",
            "sort": 0,
            "randomizer": 0,
        },
    }


class HLTBApiClient:
    """
    Client for the HLTB JSON search endpoint.

    A 429 installs a cooldown: until it expires, `search()` raises RateLimitError without
    touching the network. Any successful search clears it.
    """

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        matcher: TitleMatcher | None = None,
        ratelimiter: RateLimiter | None = None,
        retry: RetryPolicy | None = None,
        timeout_s: float = REQUEST.timeout_s,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.stats: dict[str, int] = {
            "search_fetch": 0,
            "search_empty": 0,
            "search_failed": 0,
            "cooldown_rejected": 0,
            "match_found": 0,
            "match_missing": 0,
        }
        self.http = HTTPClient(
            session=session or requests.Session(),
            stats=self.stats,
            ratelimiter=ratelimiter,
            timeout_s=timeout_s,
            headers={
                "Content-Type": "application/json",
                "Accept": "*/*",
                "Referer": HLTB.base_url,
                "Origin": HLTB.base_url,
                "User-Agent": HLTB.user_agent,
            },
        )
        self.retry = retry if retry is not None else RetryPolicy(stats=self.stats)
        self.matcher = matcher if matcher is not None else TitleMatcher()
        self._clock = clock or time.time
        self._sleep = sleep or time.sleep
        self._lock = threading.Lock()
        self._cooldown_until = 0.0

    # ----------------------------
    # Cooldown
    # ----------------------------

    @property
    def cooldown_remaining_s(self) -> float:
        with self._lock:
            return max(self._cooldown_until - self._clock(), 0.0)

    def _install_cooldown(self, retry_after_s: float) -> None:
        with self._lock:
            self._cooldown_until = max(self._cooldown_until, self._clock() + retry_after_s)
        logging.warning(f"[HLTB] Rate limited; cooling down for {retry_after_s:.0f}s")

    def clear_rate_limit(self) -> None:
        with self._lock:
            self._cooldown_until = 0.0

    def reset_retries(self, key: str | None = None) -> None:
        self.retry.reset(key)

    # ----------------------------
    # Search
    # ----------------------------

    def search(
        self,
        title: str,
        *,
        timeout_s: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[CandidateRecord]:
        term = remove_year(title)
        if not term:
            return []

        remaining = self.cooldown_remaining_s
        if remaining > 0:
            self.stats["cooldown_rejected"] += 1
            raise RateLimitError(f"HLTB API cooling down ({remaining:.0f}s left)", remaining)

        payload = build_search_payload(term)

        def _request() -> SearchResponse:
            try:
                raw = self.http.post_json(
                    HLTB.search_api_url,
                    json_body=payload,
                    timeout_s=timeout_s,
                    counter_key="api_search",
                )
            except RateLimitError as e:
                self._install_cooldown(e.retry_after_s)
                raise
            return SearchResponse.parse(raw)

        try:
            resp = self.retry.execute(
                f"search:{title}",
                _request,
                cancel_event=cancel_event,
                context=f"HLTB search {title!r}",
            )
        except ResolverError:
            self.stats["search_failed"] += 1
            raise
        self.clear_rate_limit()
        self.stats["search_fetch"] += 1
        if not resp.data:
            self.stats["search_empty"] += 1
        return [e.to_candidate() for e in resp.data]

    def find_match(
        self,
        title: str,
        *,
        timeout_s: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> MatchResult | None:
        if self.matcher.should_skip(title):
            return self.matcher.find_best_match(title, [])
        candidates = self.search(title, timeout_s=timeout_s, cancel_event=cancel_event)
        result = self.matcher.find_best_match(title, candidates)
        if result is None:
            self.stats["match_missing"] += 1
            logging.info(f"[HLTB] No confident match for {title!r} among {len(candidates)} results")
        else:
            self.stats["match_found"] += 1
        return result

    def get_game_data(self, title: str, **kwargs: Any) -> CandidateRecord | None:
        result = self.find_match(title, **kwargs)
        if result is None or result.skip:
            return None
        return result.candidate

    def batch_fetch(
        self,
        titles: list[str],
        *,
        chunk_size: int = BATCH.chunk_size,
        inter_chunk_delay_s: float = BATCH.inter_chunk_delay_s,
    ) -> dict[str, CandidateRecord | None]:
        """
        Fetch titles in sequential chunks with a pause between chunks.

        A RateLimitError stops the whole batch; titles not reached are absent from the result.
        """
        out: dict[str, CandidateRecord | None] = {}
        for i, chunk in enumerate(iter_chunks(list(titles), chunk_size)):
            if i > 0 and inter_chunk_delay_s > 0:
                self._sleep(inter_chunk_delay_s)
            for title in chunk:
                try:
                    out[title] = self.get_game_data(title)
                except RateLimitError as e:
                    out[title] = None
                    logging.warning(
                        f"[HLTB] Batch stopped at {title!r} after {len(out)}/{len(titles)} items: {e}"
                    )
                    return out
                except ResolverError as e:
                    out[title] = None
                    logging.warning(f"[HLTB] Batch item {title!r} failed: {type(e).__name__}: {e}")
        return out

    def format_stats(self) -> str:
        s = self.stats
        return (
            f"searches={s.get('search_fetch', 0)} "
            f"empty={s.get('search_empty', 0)} "
            f"failed={s.get('search_failed', 0)} "
            f"matched={s.get('match_found', 0)} "
            f"unmatched={s.get('match_missing', 0)} "
            f"cooldown_rejected={s.get('cooldown_rejected', 0)} "
            f"retries={s.get('retry_attempts', 0)} "
            f"http_429={s.get('http_429', 0)} "
            + HTTPClient.format_timing(s, key="api_search")
        )
