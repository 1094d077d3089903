from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .normalize import normalize


def default_overrides_path() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "title_overrides.yaml"


@dataclass(frozen=True)
class OverrideTables:
    """
    Static title overrides (v1):
    - manual: standard title -> canonical HLTB title
    - skip: standard titles that have no completion data (multiplayer-only)
    - by_year: standard title -> {year -> canonical HLTB title}

    All keys and values are stored in standard-normalized form.
    """

    manual: dict[str, str] = field(default_factory=dict)
    skip: frozenset[str] = frozenset()
    by_year: dict[str, dict[int, str]] = field(default_factory=dict)

    def should_skip(self, standard_title: str) -> bool:
        return standard_title in self.skip

    def manual_mapping(self, standard_title: str) -> str | None:
        return self.manual.get(standard_title)

    def year_mapping(self, standard_title: str, year: int | None) -> str | None:
        if year is None:
            return None
        return self.by_year.get(standard_title, {}).get(int(year))


def _as_str(x: Any) -> str:
    return str(x or "").strip()


def parse_override_tables(data: Any, *, source: str = "<memory>") -> OverrideTables:
    if not isinstance(data, dict):
        raise ValueError("title overrides must be a YAML mapping")

    version = int(data.get("version") or 0)
    if version != 1:
        raise ValueError(f"Unsupported title overrides version={version} in {source}. Expected version: 1")

    manual_in = data.get("manual_mappings") or {}
    if not isinstance(manual_in, dict):
        raise ValueError("title overrides 'manual_mappings' must be a mapping")
    skip_in = data.get("skip_titles") or []
    if not isinstance(skip_in, list):
        raise ValueError("title overrides 'skip_titles' must be a list")
    years_in = data.get("year_mappings") or {}
    if not isinstance(years_in, dict):
        raise ValueError("title overrides 'year_mappings' must be a mapping")

    manual: dict[str, str] = {}
    for k, v in manual_in.items():
        key = normalize(_as_str(k), "standard")
        target = normalize(_as_str(v), "standard")
        if not key or not target:
            raise ValueError(f"manual_mappings entry '{k}' must map to a non-empty title")
        if key == target:
            continue
        manual[key] = target

    skip = frozenset(t for t in (normalize(_as_str(s), "standard") for s in skip_in) if t)

    by_year: dict[str, dict[int, str]] = {}
    for k, years in years_in.items():
        key = normalize(_as_str(k), "standard")
        if not isinstance(years, dict):
            raise ValueError(f"year_mappings['{k}'] must be a mapping of year -> title")
        out: dict[int, str] = {}
        for y, v in years.items():
            try:
                year = int(y)
            except (TypeError, ValueError):
                raise ValueError(f"year_mappings['{k}'] has a non-numeric year: {y!r}") from None
            target = normalize(_as_str(v), "standard")
            if not target:
                raise ValueError(f"year_mappings['{k}'][{year}] must be a non-empty title")
            out[year] = target
        if key and out:
            by_year[key] = out

    return OverrideTables(manual=manual, skip=skip, by_year=by_year)


def load_override_tables(path: str | Path | None = None) -> OverrideTables:
    p = Path(path) if path is not None else default_overrides_path()
    if not p.exists():
        raise FileNotFoundError(str(p))
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    return parse_override_tables(data, source=str(p))
