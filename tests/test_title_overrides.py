from __future__ import annotations

import pytest


def test_bundled_overrides_load() -> None:
    from hltb_resolver.matching.overrides import load_override_tables

    t = load_override_tables()
    assert t.should_skip("counter strike 2")
    assert t.manual_mapping("skyrim") == "the elder scrolls v skyrim"
    assert t.year_mapping("doom", 2016) == "doom 2016"
    assert t.year_mapping("doom", None) is None
    assert t.year_mapping("doom", 2005) is None


def test_keys_and_values_are_normalized_and_identity_mappings_dropped() -> None:
    from hltb_resolver.matching.overrides import parse_override_tables

    t = parse_override_tables(
        {
            "version": 1,
            "manual_mappings": {
                "CS:GO": "Counter-Strike: Global Offensive",
                "Half-Life 2": "half life 2",
            },
            "skip_titles": ["Apex Legends", ""],
            "year_mappings": {"Prey": {"2017": "Prey (2017)"}},
        }
    )
    assert t.manual == {"cs go": "counter strike global offensive"}
    assert t.skip == frozenset({"apex legends"})
    assert t.year_mapping("prey", 2017) == "prey 2017"


def test_unsupported_version_is_rejected() -> None:
    from hltb_resolver.matching.overrides import parse_override_tables

    with pytest.raises(ValueError, match="Unsupported title overrides version"):
        parse_override_tables({"version": 2})


def test_malformed_sections_are_rejected() -> None:
    from hltb_resolver.matching.overrides import parse_override_tables

    with pytest.raises(ValueError):
        parse_override_tables({"version": 1, "skip_titles": "tf2"})
    with pytest.raises(ValueError):
        parse_override_tables({"version": 1, "year_mappings": {"doom": {"later": "doom"}}})
    with pytest.raises(ValueError):
        parse_override_tables({"version": 1, "manual_mappings": {"doom": ""}})


def test_load_from_custom_file(tmp_path) -> None:
    from hltb_resolver.matching import TitleMatcher
    from hltb_resolver.matching.overrides import load_override_tables

    p = tmp_path / "overrides.yaml"
    p.write_text(
        "version: 1\nmanual_mappings:\n  hk: Hollow Knight\nskip_titles:\n  - Celeste\n",
        encoding="utf-8",
    )
    m = TitleMatcher(load_override_tables(p))
    assert m.should_skip("Celeste")
    assert not m.should_skip("Counter-Strike 2")

    with pytest.raises(FileNotFoundError):
        load_override_tables(tmp_path / "missing.yaml")
