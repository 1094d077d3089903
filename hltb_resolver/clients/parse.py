from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from email.utils import parsedate_to_datetime

from ..config import RETRY


def as_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def as_int(value: object) -> int | None:
    """
    Strict numeric conversion.

    - Accepts: int, integral float
    - Rejects: bool, strings (even if numeric)
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    return None


def as_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def round_hours(value: float | None) -> float | None:
    """
    Round hours to one decimal place, halves away from zero.

    12.25 rounds to 12.3. Non-finite or out-of-range values are treated as absent.
    """
    if value is None or not math.isfinite(value):
        return None
    try:
        return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return None


def seconds_to_hours(value: object) -> float | None:
    """HLTB API durations are integer seconds; 0 means "no data"."""
    secs = as_float(value)
    if secs is None or secs <= 0:
        return None
    return round_hours(secs / 3600.0)


_FRACTIONS = {
    "½": ".5",
    "¼": ".25",
    "¾": ".75",
    "⅓": ".33",
    "⅔": ".67",
}
_PLACEHOLDERS = {"", "-", "--", "n/a", "na", "none"}
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?|\.\d+")
_RANGE_SPLIT_RE = re.compile(r"\s*[-–—]\s*|\s+to\s+")
_MINUTES_RE = re.compile(r"\bmins?\b|\bminutes?\b")
_HOURS_RE = re.compile(r"\bhours?\b|\bhrs?\b|\bh\b")


def _glyphs_to_decimal(s: str) -> str:
    for glyph, dec in _FRACTIONS.items():
        # "12½" -> "12.5", a bare "½" -> ".5"
        s = s.replace(glyph, dec)
    return s


def _first_number(s: str) -> float | None:
    m = _NUMBER_RE.search(s)
    if not m:
        return None
    return float(m.group(0))


def parse_duration_text(text: object) -> float | None:
    """
    Parse an HLTB duration string into hours.

    Examples:
        "12 Hours" -> 12.0
        "12½ Hours" -> 12.5
        "20 - 25 Hours" -> 22.5 (ranges are averaged)
        "45 Mins" -> 0.8
        "--" -> None

    Results are rounded with `round_hours`.
    """
    if not isinstance(text, str):
        return None
    s = text.strip().lower()
    if s in _PLACEHOLDERS:
        return None
    s = _glyphs_to_decimal(s)
    minutes_only = bool(_MINUTES_RE.search(s)) and not _HOURS_RE.search(s)
    s = _MINUTES_RE.sub(" ", s)
    s = _HOURS_RE.sub(" ", s).strip()

    parts = [p for p in _RANGE_SPLIT_RE.split(s) if p.strip()]
    values = [v for v in (_first_number(p) for p in parts) if v is not None]
    if not values:
        return None
    if len(values) >= 2:
        value = (values[0] + values[1]) / 2.0
    else:
        value = values[0]
    if value <= 0:
        return None
    if minutes_only:
        value = value / 60.0
    return round_hours(value)


def parse_retry_after(value: object, *, default_s: float = RETRY.default_retry_after_s) -> float:
    """
    Parse a Retry-After header value: delta-seconds or an HTTP date.

    Missing or unparseable values return `default_s`. Dates in the past return 0.
    """
    s = as_str(value)
    if not s:
        return float(default_s)
    if s.isdigit():
        return float(int(s))
    try:
        when = parsedate_to_datetime(s)
    except (TypeError, ValueError):
        return float(default_s)
    if when is None:
        return float(default_s)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


_GAME_ID_RE = re.compile(r"(?:/game/|[?&]id=)(\d+)")


def parse_game_id(href: object) -> int | None:
    m = _GAME_ID_RE.search(as_str(href))
    if not m:
        return None
    return int(m.group(1))
