"""Title normalization, similarity scoring and candidate matching."""

from .matcher import TitleMatcher
from .normalize import extract_year, get_core_words, normalize, remove_year
from .overrides import OverrideTables, load_override_tables

__all__ = [
    "OverrideTables",
    "TitleMatcher",
    "extract_year",
    "get_core_words",
    "load_override_tables",
    "normalize",
    "remove_year",
]
