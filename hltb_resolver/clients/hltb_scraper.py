from __future__ import annotations

import logging
import re
import threading
from typing import Any
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup, Tag

from ..config import HLTB, REQUEST
from ..errors import NetworkError, RateLimitError, RequestCancelledError, ScrapingError
from ..matching.matcher import TitleMatcher
from ..matching.normalize import remove_year
from ..models import CandidateRecord, MatchResult
from ..utils.utilities import RateLimiter
from .http_client import HTTPClient
from .parse import parse_duration_text, parse_game_id

# Browser-like headers; HLTB answers 403 to obvious bots.
_BROWSER_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Referer": HLTB.base_url,
    "User-Agent": HLTB.user_agent,
}

_SEL_CARD = ".search_list_details_block"
_SEL_NAME = "h3 a"
_SEL_NAME_ALT = ".search_list_details_block_title"
_SEL_IMAGE = "img.search_list_image"
_SEL_TIDBIT = ".search_list_tidbit"
_SEL_LABEL = ".search_list_tidbit_short"
_SEL_VALUE = ".search_list_tidbit_long"
_SEL_NO_RESULTS = ".search_list_no_results"

_WS_RE = re.compile(r"\s+")


def _clean_text(text: str | None) -> str:
    return _WS_RE.sub(" ", text or "").strip()[:200]


def _label_field(label: str) -> str | None:
    """Map a tidbit label to a CandidateRecord field. "Main + Extra" must win over "Main"."""
    s = label.lower()
    if "main + extra" in s or "main+extra" in s:
        return "main_extra"
    if "main" in s:
        return "main_story"
    if "completionist" in s or "100%" in s:
        return "completionist"
    if "all styles" in s or "all playstyles" in s or "average" in s:
        return "all_styles"
    return None


def _absolute(url: str | None) -> str | None:
    if not url:
        return None
    if url.startswith("//"):
        return f"https:{url}"
    return urljoin(HLTB.base_url + "/", url)


def _parse_times(card: Tag) -> dict[str, float | None]:
    times: dict[str, float | None] = {}
    tidbits = card.select(_SEL_TIDBIT)

    # Layout 1: each tidbit holds a short (label) and a long (value) child.
    for tb in tidbits:
        label_el = tb.select_one(_SEL_LABEL)
        value_el = tb.select_one(_SEL_VALUE)
        if label_el is None or value_el is None:
            continue
        field = _label_field(_clean_text(label_el.get_text()))
        if field is None or field in times:
            continue
        times[field] = parse_duration_text(_clean_text(value_el.get_text()))
    if times:
        return times

    # Layout 2: label and value are consecutive sibling tidbits.
    texts = [_clean_text(tb.get_text()) for tb in tidbits]
    i = 0
    while i < len(texts) - 1:
        field = _label_field(texts[i])
        if field is not None and field not in times:
            times[field] = parse_duration_text(texts[i + 1])
            i += 2
            continue
        i += 1
    return times


def parse_game_card(card: Tag) -> CandidateRecord | None:
    name_el = card.select_one(_SEL_NAME) or card.select_one(_SEL_NAME_ALT)
    if name_el is None:
        logging.debug("[SCRAPER] Card without a title; skipping")
        return None
    name = _clean_text(name_el.get_text())
    if not name:
        return None

    link = card.select_one(_SEL_NAME)
    href = link.get("href") if link is not None else None
    url = _absolute(href if isinstance(href, str) else None)
    img = card.select_one(_SEL_IMAGE)
    src = img.get("src") if img is not None else None

    times = _parse_times(card)
    return CandidateRecord(
        game_id=parse_game_id(url),
        name=name,
        main_story=times.get("main_story"),
        main_extra=times.get("main_extra"),
        completionist=times.get("completionist"),
        all_styles=times.get("all_styles"),
        image_url=_absolute(src if isinstance(src, str) else None),
        url=url,
        metadata={"source": "scraper"},
    )


def parse_search_results(html: str) -> list[CandidateRecord]:
    """
    Parse a rendered HLTB search results page.

    Cards that fail to parse are logged and skipped.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    if soup.select_one(_SEL_NO_RESULTS) is not None:
        return []
    out: list[CandidateRecord] = []
    for i, card in enumerate(soup.select(_SEL_CARD)):
        try:
            rec = parse_game_card(card)
        except (AttributeError, TypeError, ValueError, ArithmeticError) as e:
            logging.warning(f"[SCRAPER] Failed to parse result card {i}: {type(e).__name__}: {e}")
            continue
        if rec is not None:
            out.append(rec)
    return out


class HLTBScraper:
    """
    Fallback transport: fetch and parse the HLTB search results page.

    Produces the same CandidateRecord shape as HLTBApiClient and matches with the same
    TitleMatcher.
    """

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        matcher: TitleMatcher | None = None,
        ratelimiter: RateLimiter | None = None,
        timeout_s: float = REQUEST.timeout_s,
    ):
        self.stats: dict[str, int] = {
            "page_fetch": 0,
            "page_failed": 0,
            "results_parsed": 0,
            "match_found": 0,
            "match_missing": 0,
        }
        self.http = HTTPClient(
            session=session or requests.Session(),
            stats=self.stats,
            ratelimiter=ratelimiter,
            timeout_s=timeout_s,
            headers=dict(_BROWSER_HEADERS),
        )
        self.matcher = matcher if matcher is not None else TitleMatcher()

    def fetch_search_page(self, title: str, *, timeout_s: float | None = None) -> str:
        params = {"page": 1, "length": HLTB.page_size, "sort": "name", "search": title}
        try:
            html = self.http.get_text(
                HLTB.search_page_url, params=params, timeout_s=timeout_s, counter_key="page_get"
            )
        except RateLimitError:
            self.stats["page_failed"] += 1
            raise
        except NetworkError as e:
            self.stats["page_failed"] += 1
            raise ScrapingError(str(e), status_code=e.status_code, url=HLTB.search_page_url) from e
        if len(html) < HLTB.min_page_chars:
            self.stats["page_failed"] += 1
            raise ScrapingError(
                f"Search page too short ({len(html)} chars)", status_code=200, url=HLTB.search_page_url
            )
        self.stats["page_fetch"] += 1
        return html

    def search(self, title: str, *, timeout_s: float | None = None) -> list[CandidateRecord]:
        term = remove_year(title)
        if not term:
            return []
        results = parse_search_results(self.fetch_search_page(term, timeout_s=timeout_s))
        self.stats["results_parsed"] += len(results)
        return results

    def find_match(
        self,
        title: str,
        *,
        timeout_s: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> MatchResult | None:
        if self.matcher.should_skip(title):
            return self.matcher.find_best_match(title, [])
        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelledError(f"Scrape cancelled: {title!r}")
        candidates = self.search(title, timeout_s=timeout_s)
        result = self.matcher.find_best_match(title, candidates)
        if result is None:
            self.stats["match_missing"] += 1
        else:
            self.stats["match_found"] += 1
        return result

    def get_game_data(self, title: str, **kwargs: Any) -> CandidateRecord | None:
        result = self.find_match(title, **kwargs)
        if result is None or result.skip:
            return None
        return result.candidate

    def format_stats(self) -> str:
        s = self.stats
        return (
            f"pages={s.get('page_fetch', 0)} "
            f"failed={s.get('page_failed', 0)} "
            f"parsed={s.get('results_parsed', 0)} "
            f"matched={s.get('match_found', 0)} "
            f"unmatched={s.get('match_missing', 0)} "
            + HTTPClient.format_timing(s, key="page_get")
        )
