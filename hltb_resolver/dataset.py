from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import requests
import yaml

from .clients.http_client import HTTPClient
from .clients.parse import as_float, as_str
from .config import DATASET
from .errors import ResolverError
from .models import CandidateRecord

CONFIDENCE_LEVELS = ("high", "medium", "low")
_HOUR_FIELDS = ("main_story", "main_extra", "completionist", "all_styles")
# Community files use the camelCase field names of the public dataset.
_COMMUNITY_FIELDS = {
    "mainStory": "main_story",
    "mainExtra": "main_extra",
    "completionist": "completionist",
    "allStyles": "all_styles",
}


def default_dataset_path() -> Path:
    return Path(__file__).resolve().parent / "data" / "fallback_games.yaml"


def dataset_key(title: str) -> str:
    s = re.sub(r"[^a-z0-9\s]", "", str(title or "").lower())
    return re.sub(r"\s+", " ", s).strip()


@dataclass(frozen=True)
class DatasetEntry:
    title: str
    aliases: tuple[str, ...] = ()
    main_story: float | None = None
    main_extra: float | None = None
    completionist: float | None = None
    all_styles: float | None = None
    confidence: str = "medium"
    last_updated: str | None = None

    def to_candidate(self) -> CandidateRecord:
        return CandidateRecord(
            game_id=None,
            name=self.title,
            main_story=self.main_story,
            main_extra=self.main_extra,
            completionist=self.completionist,
            all_styles=self.all_styles,
            metadata={"confidence": self.confidence, "last_updated": self.last_updated},
        )


@dataclass(frozen=True)
class DatasetMatch:
    entry: DatasetEntry
    method: str


def _parse_entry(raw: Any, *, hours_key: str = "hours", confidence: str | None = None) -> DatasetEntry:
    if not isinstance(raw, dict):
        raise ValueError("dataset entry must be a mapping")
    title = as_str(raw.get("title"))
    if not title:
        raise ValueError("dataset entry missing 'title'")
    hours_in = raw.get(hours_key)
    if not isinstance(hours_in, dict):
        raise ValueError(f"dataset entry '{title}' missing '{hours_key}' mapping")
    if hours_key == "data":
        hours_in = {_COMMUNITY_FIELDS[k]: v for k, v in hours_in.items() if k in _COMMUNITY_FIELDS}
    hours = {k: as_float(hours_in.get(k)) for k in _HOUR_FIELDS}
    aliases = raw.get("aliases") or []
    if not isinstance(aliases, list):
        raise ValueError(f"dataset entry '{title}' has non-list 'aliases'")
    conf = confidence or as_str(raw.get("confidence")) or "medium"
    if conf not in CONFIDENCE_LEVELS:
        raise ValueError(f"dataset entry '{title}' has unknown confidence '{conf}'")
    return DatasetEntry(
        title=title,
        aliases=tuple(as_str(a) for a in aliases if as_str(a)),
        confidence=conf,
        last_updated=as_str(raw.get("last_updated") or raw.get("lastUpdated")) or None,
        **hours,
    )


class StaticDataset:
    """
    In-memory fallback: canonical key -> entry, plus alias key -> canonical key.

    Lookup order: direct key, alias, word overlap (>= fuzzy_threshold), then containment
    (shortest matching key wins).
    """

    def __init__(
        self,
        entries: list[DatasetEntry] | None = None,
        *,
        fuzzy_threshold: float = DATASET.fuzzy_threshold,
    ):
        self.fuzzy_threshold = float(fuzzy_threshold)
        self._entries: dict[str, DatasetEntry] = {}
        self._aliases: dict[str, str] = {}
        self._community_loaded = False
        for e in entries or []:
            self._add(e)

    @staticmethod
    def from_yaml(path: str | Path | None = None, **kwargs: Any) -> StaticDataset:
        p = Path(path) if path is not None else default_dataset_path()
        if not p.exists():
            raise FileNotFoundError(str(p))
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError("fallback dataset must be a YAML mapping")
        version = int(data.get("version") or 0)
        if version != 1:
            raise ValueError(f"Unsupported fallback dataset version={version} in {p}. Expected version: 1")
        games = data.get("games") or []
        if not isinstance(games, list):
            raise ValueError("fallback dataset 'games' must be a list")
        ds = StaticDataset([_parse_entry(g) for g in games], **kwargs)
        logging.info(f"[FALLBACK] Loaded {len(ds)} games from {p.name}")
        return ds

    def __len__(self) -> int:
        return len(self._entries)

    def _add(self, entry: DatasetEntry) -> bool:
        key = dataset_key(entry.title)
        if not key:
            return False
        self._entries[key] = entry
        for alias in entry.aliases:
            akey = dataset_key(alias)
            if akey:
                self._aliases[akey] = key
        return True

    # ----------------------------
    # Lookup
    # ----------------------------

    def _word_overlap(self, q: str) -> DatasetEntry | None:
        words = q.split(" ")
        best: DatasetEntry | None = None
        best_score = 0.0
        for key, entry in self._entries.items():
            key_words = key.split(" ")
            matched = sum(1 for w in words if any(kw in w or w in kw for kw in key_words))
            score = matched / max(len(words), len(key_words))
            if score > best_score and score >= self.fuzzy_threshold:
                best, best_score = entry, score
        return best

    def _partial(self, q: str) -> DatasetEntry | None:
        best_key: str | None = None
        for key in self._entries:
            if q in key:
                ok = True
            elif key in q:
                # A short key inside a long query is too weak ("portal" in "portal knights 2").
                ok = len(key) > len(q) * 0.5
            else:
                ok = False
            if ok and (best_key is None or len(key) < len(best_key)):
                best_key = key
        return self._entries[best_key] if best_key is not None else None

    def search(self, title: str) -> DatasetMatch | None:
        q = dataset_key(title)
        if not q:
            return None
        if q in self._entries:
            return DatasetMatch(self._entries[q], "direct")
        if q in self._aliases:
            return DatasetMatch(self._entries[self._aliases[q]], "alias")
        hit = self._word_overlap(q)
        if hit is not None:
            return DatasetMatch(hit, "word_overlap")
        hit = self._partial(q)
        if hit is not None:
            return DatasetMatch(hit, "partial")
        return None

    def search_fallback(self, title: str) -> CandidateRecord | None:
        match = self.search(title)
        if match is None:
            logging.debug(f"[FALLBACK] No match for {title!r}")
            return None
        logging.debug(f"[FALLBACK] {match.method} match for {title!r}: {match.entry.title}")
        return match.entry.to_candidate()

    # ----------------------------
    # Community data
    # ----------------------------

    def merge_community(self, games: Any) -> int:
        """
        Merge community entries. Local high-confidence entries are never replaced; merged
        entries are marked medium confidence. Returns the number of entries added.
        """
        if not isinstance(games, list):
            return 0
        added = 0
        for raw in games:
            try:
                hours_key = "data" if isinstance(raw, dict) and "data" in raw else "hours"
                entry = _parse_entry(raw, hours_key=hours_key, confidence="medium")
            except ValueError as e:
                logging.debug(f"[FALLBACK] Skipping community entry: {e}")
                continue
            existing = self._entries.get(dataset_key(entry.title))
            if existing is not None and existing.confidence == "high":
                continue
            if self._add(entry):
                added += 1
        logging.info(f"[FALLBACK] Added {added} games from community dataset")
        return added

    def load_community(
        self,
        url: str | None = DATASET.community_url,
        *,
        session: requests.Session | None = None,
        timeout_s: float = DATASET.community_timeout_s,
    ) -> int:
        """Fetch and merge the community dataset once. Failures are logged and ignored."""
        if not url or self._community_loaded:
            return 0
        self._community_loaded = True
        http = HTTPClient(
            session=session or requests.Session(),
            timeout_s=timeout_s,
            headers={"Accept": "application/json"},
        )
        try:
            games = http.get_json(url)
        except ResolverError as e:
            logging.debug(f"[FALLBACK] Community dataset unavailable: {e}")
            return 0
        return self.merge_community(games)

    # ----------------------------
    # Introspection
    # ----------------------------

    def available_titles(self) -> list[str]:
        return [e.title for e in self._entries.values()]

    def stats(self) -> dict[str, int]:
        by_conf = {c: 0 for c in CONFIDENCE_LEVELS}
        for e in self._entries.values():
            by_conf[e.confidence] = by_conf.get(e.confidence, 0) + 1
        return {
            "total_games": len(self._entries),
            "total_aliases": len(self._aliases),
            "high_confidence": by_conf["high"],
            "medium_confidence": by_conf["medium"],
            "low_confidence": by_conf["low"],
        }
