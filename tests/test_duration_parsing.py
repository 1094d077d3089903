from __future__ import annotations

import pytest


@pytest.mark.parametrize(
    "text,expected",
    [
        ("12 Hours", 12.0),
        ("12½ Hours", 12.5),
        ("20 - 25 Hours", 22.5),
        ("12 - 12½ Hours", 12.3),
        ("5 to 7 Hours", 6.0),
        ("45 Mins", 0.8),
        ("--", None),
        ("N/A", None),
        ("0 Hours", None),
        ("", None),
    ],
)
def test_parse_duration_text(text: str, expected: float | None) -> None:
    from hltb_resolver.clients.parse import parse_duration_text

    assert parse_duration_text(text) == expected


def test_api_seconds_are_converted_to_rounded_hours() -> None:
    from hltb_resolver.clients.parse import round_hours, seconds_to_hours

    assert seconds_to_hours(36000) == 10.0
    assert seconds_to_hours(44100) == 12.3
    assert seconds_to_hours(0) is None
    assert seconds_to_hours(None) is None
    assert round_hours(12.25) == 12.3
    assert round_hours(None) is None


def test_oversized_or_non_finite_durations_are_absent() -> None:
    from hltb_resolver.clients.parse import parse_duration_text, round_hours, seconds_to_hours

    assert parse_duration_text("9" * 40 + " Hours") is None
    assert parse_duration_text("9" * 400 + " Hours") is None
    assert round_hours(float("inf")) is None
    assert round_hours(float("nan")) is None
    assert round_hours(1e40) is None
    assert seconds_to_hours(10**45) is None


def test_parse_retry_after() -> None:
    from hltb_resolver.clients.parse import parse_retry_after

    assert parse_retry_after("120") == 120.0
    assert parse_retry_after(None) == 60.0
    assert parse_retry_after("soon", default_s=15) == 15.0
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0


def test_parse_game_id() -> None:
    from hltb_resolver.clients.parse import parse_game_id

    assert parse_game_id("/game/2198") == 2198
    assert parse_game_id("https://howlongtobeat.com/game.php?id=42") == 42
    assert parse_game_id("/search") is None
    assert parse_game_id(None) is None
