from __future__ import annotations

import pytest

PAIRS = [
    ("portal", "portal 2"),
    ("half life 2", "half life"),
    ("stardew valey", "stardew valley"),
    ("celeste", "grand theft auto 5"),
    ("a", "b"),
    ("", "portal"),
]


def test_identical_strings_score_one() -> None:
    from hltb_resolver.matching.similarity import (
        combined_similarity,
        dice_coefficient,
        jaro_winkler,
        levenshtein_similarity,
    )

    for fn in (combined_similarity, dice_coefficient, jaro_winkler, levenshtein_similarity):
        assert fn("hollow knight", "hollow knight") == 1.0


def test_every_metric_stays_in_unit_interval() -> None:
    from hltb_resolver.matching.similarity import (
        combined_similarity,
        dice_coefficient,
        jaro_winkler,
        levenshtein_similarity,
        word_similarity,
    )

    for a, b in PAIRS:
        for fn in (
            combined_similarity,
            dice_coefficient,
            jaro_winkler,
            levenshtein_similarity,
            word_similarity,
        ):
            score = fn(a, b)
            assert 0.0 <= score <= 1.0, (fn.__name__, a, b, score)


def test_known_metric_values() -> None:
    from hltb_resolver.matching.similarity import (
        dice_coefficient,
        jaro_winkler,
        levenshtein_similarity,
        word_similarity,
    )

    assert levenshtein_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)
    assert dice_coefficient("night", "nacht") == pytest.approx(0.25)
    assert jaro_winkler("martha", "marhta") == pytest.approx(0.9611, abs=1e-3)
    assert word_similarity("dark souls", "Dark Souls 3") == pytest.approx(2 / 3)


def test_combined_similarity_ranks_typos_above_unrelated_titles() -> None:
    from hltb_resolver.matching.similarity import combined_similarity, is_match

    close = combined_similarity("stardew valey", "stardew valley")
    far = combined_similarity("stardew valey", "grand theft auto 5")
    assert close > 0.9
    assert far < 0.5
    assert is_match("stardew valey", "stardew valley")
    assert not is_match("stardew valey", "grand theft auto 5")


def test_fuzzy_match_reports_best_method() -> None:
    from hltb_resolver.matching.similarity import fuzzy_match, format_percentage

    same = fuzzy_match("doom", "doom")
    assert same.score == 1.0
    assert same.method == "combined"

    words = fuzzy_match("souls dark", "dark souls")
    assert words.method == "word"
    assert words.score == 1.0

    assert format_percentage(0.8567) == "85.7%"
