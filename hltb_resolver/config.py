from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 30.0
    # Jitter is a fraction of the computed delay (0.25 -> up to +25%).
    jitter_ratio: float = 0.25
    default_retry_after_s: float = 60.0


@dataclass(frozen=True)
class RequestConfig:
    timeout_s: int = 10


@dataclass(frozen=True)
class RateLimitConfig:
    # Token bucket shared by every outbound call: `capacity` calls per `window_s`.
    capacity: int = 10
    window_s: float = 60.0


@dataclass(frozen=True)
class CacheConfig:
    ttl_s: float = 7 * 24 * 60 * 60
    max_entries: int = 1000
    max_bytes: int = 5 * 1024 * 1024
    key_prefix: str = "hltb:"


@dataclass(frozen=True)
class MatchingConfig:
    fuzzy_standard_threshold: float = 0.8
    word_match_threshold: float = 0.75
    fuzzy_aggressive_threshold: float = 0.7
    core_word_min_len: int = 3
    word_weight: float = 0.6
    char_weight: float = 0.4
    max_title_len: int = 200


@dataclass(frozen=True)
class BatchConfig:
    chunk_size: int = 5
    inter_chunk_delay_s: float = 0.5


@dataclass(frozen=True)
class HealthConfig:
    # A source with this many attempts in a row and no success is reported as unresponsive.
    unresponsive_after: int = 10
    slow_avg_ms: float = 5000.0


@dataclass(frozen=True)
class HLTBConfig:
    base_url: str = "https://howlongtobeat.com"
    search_api_url: str = "https://howlongtobeat.com/api/search"
    search_page_url: str = "https://howlongtobeat.com/search_results"
    image_base_url: str = "https://howlongtobeat.com/games/"
    page_size: int = 20
    min_page_chars: int = 100
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )


@dataclass(frozen=True)
class DatasetConfig:
    fuzzy_threshold: float = 0.5
    community_url: str | None = None
    community_timeout_s: float = 5.0


RETRY = RetryConfig()
REQUEST = RequestConfig()
RATE_LIMIT = RateLimitConfig()
CACHE = CacheConfig()
MATCHING = MatchingConfig()
BATCH = BatchConfig()
HEALTH = HealthConfig()
HLTB = HLTBConfig()
DATASET = DatasetConfig()
