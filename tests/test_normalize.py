from __future__ import annotations

import pytest

TITLES = [
    "Half-Life 2",
    "The Witcher 3: Wild Hunt - Game of the Year Edition",
    "CS:GO",
    "GTA V",
    "Dark Souls III",
    "Skyrim Special Edition",
    "DOOM (2016)",
    "Baldur's Gate 3",
    "Portal™",
    "A Plague Tale: Innocence",
    "Final Fantasy X",
    "X-Men Origins",
    "  Stardew   Valley ",
]


@pytest.mark.parametrize("level", ["minimal", "standard", "aggressive"])
def test_normalize_is_idempotent(level: str) -> None:
    from hltb_resolver.matching.normalize import normalize

    for title in TITLES:
        once = normalize(title, level)
        assert normalize(once, level) == once, title


def test_normalize_minimal_and_standard_forms() -> None:
    from hltb_resolver.matching.normalize import normalize

    assert normalize("Portal™", "minimal") == "portal"
    assert normalize("  Stardew   Valley ", "minimal") == "stardew valley"
    assert normalize("Half-Life 2", "minimal") == "half-life 2"
    assert normalize("Half-Life 2") == "half life 2"
    assert normalize("Baldur's Gate 3") == "baldurs gate 3"
    assert normalize("CS:GO") == "cs go"


def test_normalize_aggressive_expected_values() -> None:
    from hltb_resolver.matching.normalize import normalize

    assert normalize("Skyrim Special Edition", "aggressive") == "skyrim"
    assert normalize("CS:GO", "aggressive") == "counter strike global offensive"
    assert normalize("GTA V", "aggressive") == "grand theft auto 5"
    assert normalize("Dark Souls III", "aggressive") == "dark souls 3"
    assert normalize("The Witcher 3: Wild Hunt", "aggressive") == "witcher 3"
    assert normalize("A Plague Tale: Innocence", "aggressive") == "plague tale"


def test_normalize_aggressive_keeps_hyphenated_names_whole() -> None:
    from hltb_resolver.matching.normalize import normalize

    assert normalize("Half-Life 2", "aggressive") == "half life 2"
    # The leading token is never treated as a numeral.
    assert normalize("X-Men Origins", "aggressive") == "x men origins"


def test_normalize_rejects_unknown_level_and_handles_empty_input() -> None:
    from hltb_resolver.matching.normalize import normalize

    with pytest.raises(ValueError):
        normalize("Portal", "extreme")
    assert normalize("") == ""
    assert normalize(None) == ""  # type: ignore[arg-type]


def test_year_helpers() -> None:
    from hltb_resolver.matching.normalize import extract_year, remove_year

    assert extract_year("DOOM (2016)") == 2016
    assert extract_year("Pong (1972)") is None
    assert extract_year("DOOM") is None
    assert remove_year("DOOM (2016)") == "DOOM"
    assert remove_year("Prey (2017) Mooncrash") == "Prey Mooncrash"


def test_core_words_and_ampersands() -> None:
    from hltb_resolver.matching.normalize import get_core_words, normalize_ampersands

    assert get_core_words("The Legend of Zelda: Breath of the Wild") == [
        "legend",
        "zelda",
        "breath",
        "wild",
    ]
    assert normalize_ampersands("Ratchet & Clank") == "Ratchet and Clank"
