from __future__ import annotations


def _cands(*names: str):
    from hltb_resolver.models import CandidateRecord

    return [CandidateRecord(game_id=i + 1, name=n) for i, n in enumerate(names)]


def test_multiplayer_only_title_is_skipped_without_candidates() -> None:
    from hltb_resolver.matching import TitleMatcher

    m = TitleMatcher()
    res = m.find_best_match("Counter-Strike 2", [])
    assert res is not None
    assert res.skip is True
    assert res.method == "skip"
    assert res.candidate is None
    assert res.confidence == 1.0
    assert m.should_skip("Dota 2")
    assert not m.should_skip("Portal")


def test_identical_title_is_exact_match() -> None:
    from hltb_resolver.matching import TitleMatcher

    res = TitleMatcher().find_best_match(
        "Half-Life 2", _cands("Half-Life 2: Episode One", "Half-Life 2")
    )
    assert res is not None
    assert res.method == "exact"
    assert res.confidence == 1.0
    assert res.candidate.name == "Half-Life 2"


def test_exact_wins_before_fuzzy_even_when_listed_later() -> None:
    from hltb_resolver.matching import TitleMatcher

    res = TitleMatcher().find_best_match("Portal", _cands("Portal 2", "Portal"))
    assert res is not None
    assert res.method == "exact"
    assert res.candidate.game_id == 2


def test_year_hint_selects_the_remake() -> None:
    from hltb_resolver.matching import TitleMatcher

    m = TitleMatcher()
    cands = _cands("DOOM", "DOOM (2016)", "DOOM Eternal")

    res = m.find_best_match("doom", cands, year=2016)
    assert res is not None
    assert res.method == "year_specific"
    assert res.candidate.name == "DOOM (2016)"

    # The year can also come from the title itself.
    res = m.find_best_match("DOOM (1993)", cands)
    assert res is not None
    assert res.method == "year_specific"
    assert res.candidate.name == "DOOM"


def test_manual_mapping_resolves_short_names() -> None:
    from hltb_resolver.matching import TitleMatcher

    res = TitleMatcher().find_best_match(
        "Skyrim", _cands("Skyrim VR", "The Elder Scrolls V: Skyrim")
    )
    assert res is not None
    assert res.method == "manual_mapping"
    assert res.candidate.name == "The Elder Scrolls V: Skyrim"


def test_typo_is_fuzzy_standard_and_ties_keep_first_candidate() -> None:
    from hltb_resolver.matching import TitleMatcher

    res = TitleMatcher().find_best_match(
        "Stardew Valey", _cands("Stardew Valley", "Stardew Valley")
    )
    assert res is not None
    assert res.method == "fuzzy_standard"
    assert 0.8 <= res.confidence < 1.0
    assert res.candidate.game_id == 1


def test_subtitle_only_difference_falls_through_to_aggressive() -> None:
    from hltb_resolver.matching import TitleMatcher

    res = TitleMatcher().find_best_match("Hollow Knight", _cands("Hollow Knight: Voidheart Edition"))
    assert res is not None
    assert res.method == "fuzzy_aggressive"
    assert res.confidence == 1.0


def test_unrelated_candidates_and_empty_input_return_none() -> None:
    from hltb_resolver.matching import TitleMatcher

    m = TitleMatcher()
    assert m.find_best_match("Celeste", _cands("Grand Theft Auto V")) is None
    assert m.find_best_match("Celeste", []) is None
    assert m.find_best_match("", _cands("Celeste")) is None


def test_custom_strategy_chain() -> None:
    from hltb_resolver.matching import OverrideTables, TitleMatcher
    from hltb_resolver.matching.matcher import ExactMatchStrategy

    m = TitleMatcher(OverrideTables(), strategies=[ExactMatchStrategy()])
    assert m.find_best_match("Stardew Valey", _cands("Stardew Valley")) is None
    out = m.batch_match([("Celeste", _cands("Celeste")), ("Hades", [])])
    assert out["Celeste"].method == "exact"
    assert out["Hades"] is None


def test_match_details_lists_scores_per_candidate() -> None:
    from hltb_resolver.matching import TitleMatcher

    details = TitleMatcher().get_match_details("DOOM (2016)", _cands("DOOM", "DOOM Eternal"))
    assert details["year"] == 2016
    assert details["normalized"]["standard"] == "doom 2016"
    assert [c["name"] for c in details["candidates"]] == ["DOOM", "DOOM Eternal"]
    for c in details["candidates"]:
        assert set(c["scores"]) == {"dice", "jaro_winkler", "levenshtein", "combined", "word"}
