from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Sequence

from ..config import MATCHING
from ..models import CandidateRecord, MatchResult
from .normalize import extract_year, get_core_words, normalize, remove_year
from .overrides import OverrideTables, load_override_tables
from .similarity import (
    combined_similarity,
    dice_coefficient,
    jaro_winkler,
    levenshtein_similarity,
    word_similarity,
)

SKIP_REASON = "Multiplayer-only game with no completion times"


@dataclass(frozen=True)
class MatchQuery:
    """A title prepared once for every strategy in the chain."""

    title: str
    minimal: str
    standard: str
    aggressive: str
    year: int | None
    year_key: str

    @staticmethod
    def from_title(title: str, *, year: int | None = None) -> MatchQuery:
        return MatchQuery(
            title=title,
            minimal=normalize(title, "minimal"),
            standard=normalize(title, "standard"),
            aggressive=normalize(title, "aggressive"),
            year=year if year is not None else extract_year(title),
            year_key=normalize(remove_year(title), "standard"),
        )


class MatchStrategy(Protocol):
    name: str

    def attempt(
        self, query: MatchQuery, candidates: Sequence[CandidateRecord]
    ) -> MatchResult | None: ...


def _find_standard_name(target: str, candidates: Sequence[CandidateRecord]) -> CandidateRecord | None:
    for c in candidates:
        if normalize(c.name, "standard") == target:
            return c
    return None


@dataclass(frozen=True)
class SkipListStrategy:
    overrides: OverrideTables
    name: str = "skip"

    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> MatchResult | None:
        if not self.overrides.should_skip(query.standard):
            return None
        return MatchResult(
            candidate=None,
            confidence=1.0,
            method="skip",
            skip=True,
            reason=SKIP_REASON,
            normalized_query=query.standard,
        )


@dataclass(frozen=True)
class YearSpecificStrategy:
    overrides: OverrideTables
    name: str = "year_specific"

    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> MatchResult | None:
        target = self.overrides.year_mapping(query.year_key, query.year)
        if not target:
            return None
        hit = _find_standard_name(target, candidates)
        if hit is None:
            return None
        return MatchResult(
            candidate=hit,
            confidence=1.0,
            method="year_specific",
            normalized_query=query.standard,
            normalized_candidate=target,
        )


@dataclass(frozen=True)
class ManualMappingStrategy:
    overrides: OverrideTables
    name: str = "manual_mapping"

    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> MatchResult | None:
        target = self.overrides.manual_mapping(query.standard)
        if not target:
            return None
        hit = _find_standard_name(target, candidates)
        if hit is None:
            return None
        return MatchResult(
            candidate=hit,
            confidence=1.0,
            method="manual_mapping",
            normalized_query=query.standard,
            normalized_candidate=target,
        )


@dataclass(frozen=True)
class ExactMatchStrategy:
    name: str = "exact"

    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> MatchResult | None:
        if not query.minimal:
            return None
        for c in candidates:
            if normalize(c.name, "minimal") == query.minimal:
                return MatchResult(
                    candidate=c,
                    confidence=1.0,
                    method="exact",
                    normalized_query=query.minimal,
                    normalized_candidate=query.minimal,
                )
        return None


@dataclass(frozen=True)
class FuzzyStrategy:
    level: str
    threshold: float
    name: str = "fuzzy"

    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> MatchResult | None:
        q = query.standard if self.level == "standard" else query.aggressive
        if not q:
            return None
        best: CandidateRecord | None = None
        best_norm = ""
        best_score = 0.0
        for c in candidates:
            cn = normalize(c.name, self.level)
            if not cn:
                continue
            score = combined_similarity(q, cn)
            # Strictly greater: equal scores keep the earlier candidate.
            if score > best_score:
                best, best_norm, best_score = c, cn, score
        if best is None or best_score < self.threshold:
            return None
        return MatchResult(
            candidate=best,
            confidence=best_score,
            method=f"fuzzy_{self.level}",
            normalized_query=q,
            normalized_candidate=best_norm,
        )


@dataclass(frozen=True)
class WordMatchStrategy:
    threshold: float
    min_len: int = MATCHING.core_word_min_len
    word_weight: float = MATCHING.word_weight
    char_weight: float = MATCHING.char_weight
    name: str = "word_match"

    def attempt(self, query: MatchQuery, candidates: Sequence[CandidateRecord]) -> MatchResult | None:
        q_words = set(get_core_words(query.standard, self.min_len))
        if not q_words:
            return None
        best: CandidateRecord | None = None
        best_norm = ""
        best_score = 0.0
        for c in candidates:
            cn = normalize(c.name, "standard")
            c_words = set(get_core_words(cn, self.min_len))
            if not c_words:
                continue
            jaccard = len(q_words & c_words) / len(q_words | c_words)
            score = jaccard * self.word_weight + combined_similarity(query.standard, cn) * self.char_weight
            if score > best_score:
                best, best_norm, best_score = c, cn, score
        if best is None or best_score < self.threshold:
            return None
        return MatchResult(
            candidate=best,
            confidence=best_score,
            method="word_match",
            normalized_query=query.standard,
            normalized_candidate=best_norm,
        )


def default_strategies(overrides: OverrideTables) -> list[MatchStrategy]:
    return [
        SkipListStrategy(overrides),
        YearSpecificStrategy(overrides),
        ManualMappingStrategy(overrides),
        ExactMatchStrategy(),
        FuzzyStrategy("standard", MATCHING.fuzzy_standard_threshold, name="fuzzy_standard"),
        WordMatchStrategy(MATCHING.word_match_threshold),
        FuzzyStrategy("aggressive", MATCHING.fuzzy_aggressive_threshold, name="fuzzy_aggressive"),
    ]


class TitleMatcher:
    """
    Pick the best candidate for a catalog title.

    Strategies run in order and the first one that returns a result wins. The skip list is
    checked even when there are no candidates, so multiplayer-only titles are recognized
    before any search happens.
    """

    def __init__(
        self,
        overrides: OverrideTables | None = None,
        *,
        strategies: list[MatchStrategy] | None = None,
    ):
        self.overrides = overrides if overrides is not None else load_override_tables()
        self.strategies = strategies if strategies is not None else default_strategies(self.overrides)

    def should_skip(self, title: str) -> bool:
        return self.overrides.should_skip(normalize(title, "standard"))

    def find_best_match(
        self,
        title: str,
        candidates: Iterable[CandidateRecord],
        *,
        year: int | None = None,
    ) -> MatchResult | None:
        if not isinstance(title, str) or not title.strip():
            return None
        cands = list(candidates or [])
        query = MatchQuery.from_title(title, year=year)
        for strategy in self.strategies:
            if not cands and strategy.name != "skip":
                continue
            result = strategy.attempt(query, cands)
            if result is not None:
                if result.method not in ("exact", "skip"):
                    logging.debug(
                        f"[MATCH] {title!r} -> {result.candidate.name if result.candidate else None!r} "
                        f"via {result.method} ({result.confidence * 100:.1f}%)"
                    )
                return result
        return None

    def batch_match(
        self, items: Iterable[tuple[str, Sequence[CandidateRecord]]]
    ) -> dict[str, MatchResult | None]:
        return {title: self.find_best_match(title, cands) for title, cands in items}

    def get_match_details(self, title: str, candidates: Iterable[CandidateRecord]) -> dict[str, Any]:
        """Normalized forms and per-metric scores (standard level) for every candidate."""

        def _forms(s: str) -> dict[str, str]:
            return {level: normalize(s, level) for level in ("minimal", "standard", "aggressive")}

        q = _forms(title)
        rows: list[dict[str, Any]] = []
        for c in candidates:
            cf = _forms(c.name)
            a, b = q["standard"], cf["standard"]
            rows.append(
                {
                    "name": c.name,
                    "game_id": c.game_id,
                    "normalized": cf,
                    "scores": {
                        "dice": dice_coefficient(a, b),
                        "jaro_winkler": jaro_winkler(a, b),
                        "levenshtein": levenshtein_similarity(a, b),
                        "combined": combined_similarity(a, b),
                        "word": word_similarity(a, b),
                    },
                }
            )
        return {"title": title, "normalized": q, "year": extract_year(title), "candidates": rows}
