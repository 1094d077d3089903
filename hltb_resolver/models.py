from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any

MATCH_METHODS = (
    "exact",
    "manual_mapping",
    "year_specific",
    "fuzzy_standard",
    "fuzzy_aggressive",
    "word_match",
    "skip",
)

SOURCES = ("api", "scraper", "fallback")

# Confidence tier per source; cache hits are reported as "low".
SOURCE_TIERS = {
    "api": "high",
    "scraper": "medium",
    "fallback": "low",
    "cache": "low",
    "skip_list": "high",
}


@dataclass(frozen=True)
class CandidateRecord:
    """One search result, independent of the transport that produced it."""

    game_id: int | None
    name: str
    main_story: float | None = None
    main_extra: float | None = None
    completionist: float | None = None
    all_styles: float | None = None
    image_url: str | None = None
    url: str | None = None
    release_year: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def hours(self) -> dict[str, float | None]:
        return {
            "main_story": self.main_story,
            "main_extra": self.main_extra,
            "completionist": self.completionist,
            "all_styles": self.all_styles,
        }

    def has_hours(self) -> bool:
        return any(v is not None for v in self.hours().values())


@dataclass
class MatchResult:
    candidate: CandidateRecord | None
    confidence: float
    method: str
    skip: bool = False
    reason: str = ""
    normalized_query: str = ""
    normalized_candidate: str = ""

    def __post_init__(self) -> None:
        if self.skip == (self.candidate is not None):
            raise ValueError("MatchResult must carry either skip=True or a candidate")
        if self.method not in MATCH_METHODS:
            raise ValueError(f"Unknown match method: {self.method}")
        self.confidence = max(0.0, min(1.0, float(self.confidence)))


@dataclass
class CacheEntry:
    key: str
    payload: dict[str, Any]
    created_at: float
    hit_count: int = 0
    size: int = 0
    ttl_s: float = 0.0

    def is_expired(self, now: float) -> bool:
        return (now - self.created_at) >= self.ttl_s

    def age_s(self, now: float) -> float:
        return max(now - self.created_at, 0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "payload": self.payload,
            "created_at": self.created_at,
            "hit_count": self.hit_count,
            "size": self.size,
            "ttl_s": self.ttl_s,
        }

    @staticmethod
    def from_dict(raw: Any) -> CacheEntry | None:
        if not isinstance(raw, dict):
            return None
        payload = raw.get("payload")
        if not isinstance(payload, dict):
            return None
        try:
            return CacheEntry(
                key=str(raw["key"]),
                payload=payload,
                created_at=float(raw["created_at"]),
                hit_count=int(raw.get("hit_count", 0) or 0),
                size=int(raw.get("size", 0) or 0),
                ttl_s=float(raw["ttl_s"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass
class SourceStats:
    attempts: int = 0
    successes: int = 0
    consecutive_failures: int = 0


@dataclass
class ServiceStats:
    total_requests: int = 0
    cache_hits: int = 0
    skipped: int = 0
    not_found: int = 0
    completed_requests: int = 0
    total_retrieval_ms: float = 0.0
    average_retrieval_ms: float = 0.0
    sources: dict[str, SourceStats] = field(
        default_factory=lambda: {name: SourceStats() for name in SOURCES}
    )

    def record_latency(self, elapsed_ms: float) -> None:
        # Mean over finished requests, including skips and cache hits.
        self.completed_requests += 1
        self.total_retrieval_ms += elapsed_ms
        self.average_retrieval_ms = self.total_retrieval_ms / self.completed_requests

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "total_requests": self.total_requests,
            "cache_hits": self.cache_hits,
            "skipped": self.skipped,
            "not_found": self.not_found,
            "completed_requests": self.completed_requests,
            "average_retrieval_ms": round(self.average_retrieval_ms, 1),
        }
        for name, s in self.sources.items():
            out[f"{name}_attempts"] = s.attempts
            out[f"{name}_successes"] = s.successes
            out[f"{name}_consecutive_failures"] = s.consecutive_failures
        return out


@dataclass
class SearchOptions:
    skip_cache: bool = False
    skip_api: bool = False
    skip_scraping: bool = False
    skip_fallback: bool = False
    timeout_s: float | None = None
    cancel_event: threading.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


@dataclass
class ResolvedGameData:
    title: str
    name: str | None = None
    game_id: int | None = None
    main_story: float | None = None
    main_extra: float | None = None
    completionist: float | None = None
    all_styles: float | None = None
    source: str = "api"
    confidence: str = "high"
    match_confidence: float | None = None
    match_method: str | None = None
    retrieval_ms: int = 0
    skip: bool = False
    reason: str = ""
    cached_from: str | None = None
    image_url: str | None = None
    resolved_at: float = field(default_factory=time.time)

    @staticmethod
    def from_candidate(
        title: str,
        candidate: CandidateRecord,
        *,
        source: str,
        match: MatchResult | None = None,
    ) -> ResolvedGameData:
        return ResolvedGameData(
            title=title,
            name=candidate.name,
            game_id=candidate.game_id,
            main_story=candidate.main_story,
            main_extra=candidate.main_extra,
            completionist=candidate.completionist,
            all_styles=candidate.all_styles,
            source=source,
            confidence=SOURCE_TIERS.get(source, "low"),
            match_confidence=match.confidence if match is not None else None,
            match_method=match.method if match is not None else None,
            image_url=candidate.image_url,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "name": self.name,
            "game_id": self.game_id,
            "main_story": self.main_story,
            "main_extra": self.main_extra,
            "completionist": self.completionist,
            "all_styles": self.all_styles,
            "source": self.source,
            "confidence": self.confidence,
            "match_confidence": self.match_confidence,
            "match_method": self.match_method,
            "retrieval_ms": self.retrieval_ms,
            "skip": self.skip,
            "reason": self.reason,
            "cached_from": self.cached_from,
            "image_url": self.image_url,
            "resolved_at": self.resolved_at,
        }

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> ResolvedGameData:
        known = ResolvedGameData.__dataclass_fields__.keys()
        return ResolvedGameData(**{k: v for k, v in raw.items() if k in known})


@dataclass(frozen=True)
class BatchItem:
    title: str
    platform_id: str | None = None

    @property
    def key(self) -> str:
        return self.platform_id or self.title
