from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from rapidfuzz.distance import Jaro, Levenshtein

# All metrics return a score in [0, 1], 1.0 meaning identical.


@dataclass(frozen=True)
class FuzzyScore:
    score: float
    method: str


def levenshtein_similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / longest


def _bigrams(s: str) -> Counter[str]:
    return Counter(s[i : i + 2] for i in range(len(s) - 1))


def dice_coefficient(a: str, b: str) -> float:
    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0
    ba = _bigrams(a)
    bb = _bigrams(b)
    overlap = sum((ba & bb).values())
    return 2.0 * overlap / (sum(ba.values()) + sum(bb.values()))


def _common_prefix(a: str, b: str, limit: int) -> int:
    n = min(len(a), len(b), limit)
    for i in range(n):
        if a[i] != b[i]:
            return i
    return n


def jaro_winkler(a: str, b: str, prefix_scale: float = 0.1) -> float:
    """Jaro similarity plus a bonus for up to 4 shared leading characters."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    jaro = Jaro.similarity(a, b)
    prefix = _common_prefix(a, b, 4)
    return min(1.0, jaro + prefix * prefix_scale * (1.0 - jaro))


def combined_similarity(a: str, b: str) -> float:
    if a == b:
        return 1.0
    return (
        dice_coefficient(a, b) * 0.3
        + jaro_winkler(a, b) * 0.4
        + levenshtein_similarity(a, b) * 0.3
    )


def word_similarity(a: str, b: str) -> float:
    """Jaccard index over lowercase word sets."""
    wa = set(a.lower().split())
    wb = set(b.lower().split())
    if not wa and not wb:
        return 1.0
    if not wa or not wb:
        return 0.0
    return len(wa & wb) / len(wa | wb)


def fuzzy_match(a: str, b: str) -> FuzzyScore:
    scores = [
        FuzzyScore(combined_similarity(a, b), "combined"),
        FuzzyScore(word_similarity(a, b), "word"),
        FuzzyScore(dice_coefficient(a, b), "dice"),
        FuzzyScore(jaro_winkler(a, b), "jaro_winkler"),
    ]
    best = scores[0]
    for s in scores[1:]:
        if s.score > best.score:
            best = s
    return best


def is_match(a: str, b: str, threshold: float = 0.8) -> bool:
    return combined_similarity(a, b) >= threshold


def format_percentage(score: float) -> str:
    return f"{score * 100:.1f}%"
