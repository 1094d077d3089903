from __future__ import annotations

import re
from datetime import date

LEVELS = ("minimal", "standard", "aggressive")

_SYMBOLS_RE = re.compile(r"[®™©]")
_WHITESPACE_RE = re.compile(r"\s+")
_APOSTROPHES_RE = re.compile(r"[’'`]")
_PUNCT_RE = re.compile(r"[^\w\s]|_")
# Subtitle separators. A bare hyphen ("Half-Life") or unspaced colon ("CS:GO") is not one.
_SUBTITLE_RE = re.compile(r":\s|\s-\s|\s*[–—]\s*")
_ARTICLES_RE = re.compile(r"^(?:(?:the|a|an)\s+)+")
_YEAR_RE = re.compile(r"\((\d{4})\)")
_YEAR_STRIP_RE = re.compile(r"\s*\(\d{4}\)\s*")
_AMPERSAND_RE = re.compile(r"\s*&\s*")

_EDITION_SUFFIXES = (
    "game of the year edition",
    "goty edition",
    "goty",
    "definitive edition",
    "enhanced edition",
    "special edition",
    "deluxe edition",
    "ultimate edition",
    "complete edition",
    "collectors edition",
    "gold edition",
    "platinum edition",
    "remastered",
    "remake",
    "directors cut",
    "digital deluxe",
)
_EDITION_RE = re.compile(r"\s+(?:" + "|".join(re.escape(e) for e in _EDITION_SUFFIXES) + r")$")

# Keys are in standard form ("CS:GO" -> "cs go").
_ACRONYMS = {
    "cs go": "counter strike global offensive",
    "csgo": "counter strike global offensive",
    "pubg": "playerunknowns battlegrounds",
    "gta": "grand theft auto",
    "cod": "call of duty",
    "bf": "battlefield",
    "r6": "rainbow six",
    "r6s": "rainbow six siege",
    "dota": "defense of the ancients",
    "tf2": "team fortress 2",
    "mw": "modern warfare",
    "mw2": "modern warfare 2",
    "mw3": "modern warfare 3",
    "bo": "black ops",
    "bo2": "black ops 2",
    "bo3": "black ops 3",
    "bo4": "black ops 4",
}

_NUMBER_WORDS = {
    "ii": "2",
    "iii": "3",
    "iv": "4",
    "v": "5",
    "vi": "6",
    "vii": "7",
    "viii": "8",
    "ix": "9",
    "x": "10",
    "xi": "11",
    "xii": "12",
    "one": "1",
    "two": "2",
    "three": "3",
    "four": "4",
    "five": "5",
    "six": "6",
    "seven": "7",
    "eight": "8",
    "nine": "9",
    "ten": "10",
}

_STOP_WORDS = {
    "the",
    "a",
    "an",
    "and",
    "or",
    "of",
    "in",
    "on",
    "at",
    "to",
    "for",
    "with",
    "from",
    "by",
    "as",
    "is",
    "was",
    "edition",
    "game",
    "collection",
}


def _minimal(s: str) -> str:
    s = _SYMBOLS_RE.sub("", s)
    s = _WHITESPACE_RE.sub(" ", s)
    return s.lower().strip()


def _standard(s: str) -> str:
    s = _minimal(s)
    s = _APOSTROPHES_RE.sub("", s)
    s = _PUNCT_RE.sub(" ", s)
    return _WHITESPACE_RE.sub(" ", s).strip()


def _drop_subtitle(s: str) -> str:
    parts = _SUBTITLE_RE.split(s, maxsplit=1)
    head = parts[0].strip()
    return head if head else s


def _strip_editions(s: str) -> str:
    while True:
        stripped = _EDITION_RE.sub("", s).strip()
        if stripped == s or not stripped:
            return s
        s = stripped


def _expand_acronyms(s: str) -> str:
    if s in _ACRONYMS:
        return _ACRONYMS[s]
    for acronym, expanded in _ACRONYMS.items():
        if s.startswith(acronym + " "):
            return expanded + s[len(acronym) :]
    return s


def _convert_numbers(s: str) -> str:
    tokens = s.split(" ")
    if len(tokens) < 2:
        return s
    # The leading word is never a numeral ("X-Men", "V Rising").
    return " ".join(tokens[:1] + [_NUMBER_WORDS.get(t, t) for t in tokens[1:]])


def _aggressive(s: str) -> str:
    s = _SYMBOLS_RE.sub("", s)
    s = _drop_subtitle(s)
    s = _standard(s)
    s = _ARTICLES_RE.sub("", s)
    s = _strip_editions(s)
    s = _expand_acronyms(s)
    s = _convert_numbers(s)
    return _WHITESPACE_RE.sub(" ", s).strip()


def normalize(title: object, level: str = "standard") -> str:
    """
    Normalize a game title at one of three levels.

    - minimal: drop trademark glyphs, collapse whitespace, lowercase
    - standard: minimal + apostrophes removed, other punctuation replaced by spaces
    - aggressive: standard + subtitle, leading articles and edition suffixes dropped,
      acronyms expanded, Roman numerals and number words converted to digits

    Every level is idempotent. Non-string or empty input returns "".
    """
    if level not in LEVELS:
        raise ValueError(f"Unknown normalization level: {level}")
    if not isinstance(title, str) or not title:
        return ""
    if level == "minimal":
        return _minimal(title)
    if level == "standard":
        return _standard(title)
    return _aggressive(title)


def extract_year(title: object) -> int | None:
    """Return the first parenthesized year, e.g. "DOOM (2016)" -> 2016, if plausible."""
    if not isinstance(title, str):
        return None
    m = _YEAR_RE.search(title)
    if not m:
        return None
    year = int(m.group(1))
    if 1980 <= year <= date.today().year + 2:
        return year
    return None


def remove_year(title: object) -> str:
    if not isinstance(title, str):
        return ""
    return _WHITESPACE_RE.sub(" ", _YEAR_STRIP_RE.sub(" ", title)).strip()


def normalize_ampersands(title: object) -> str:
    if not isinstance(title, str):
        return ""
    return _AMPERSAND_RE.sub(" and ", title)


def get_core_words(title: object, min_len: int = 3) -> list[str]:
    return [
        w
        for w in normalize(title, "standard").split(" ")
        if len(w) >= min_len and w not in _STOP_WORDS
    ]
