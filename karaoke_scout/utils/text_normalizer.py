"""Text normalization for venue names, DJ names, weekdays and times.

These helpers produce the *keys* used by reconciliation: two raw results
describing "Joe's Bar" and "JOE'S BAR " on "monday" must collapse into a
single show, and "DJ Sparkle" / "Sparkle" must be treated as one host.
Fuzzy comparisons use rapidfuzz.
"""

from __future__ import annotations

import re
import unicodedata

from rapidfuzz import fuzz

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_DAY_ALIASES: dict[str, str] = {
    "mon": "monday",
    "tue": "tuesday",
    "tues": "tuesday",
    "wed": "wednesday",
    "weds": "wednesday",
    "thu": "thursday",
    "thur": "thursday",
    "thurs": "thursday",
    "fri": "friday",
    "sat": "saturday",
    "sun": "sunday",
}

_VENUE_NOISE_RE = re.compile(r"\b(the|bar|grill|pub|tavern|restaurant|lounge|and)\b")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9 ]+")
_WS_RE = re.compile(r"\s+")


def _fold(text: str) -> str:
    """Lower-case, strip accents, drop apostrophes, collapse whitespace."""
    folded = unicodedata.normalize("NFKD", text)
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    folded = folded.lower().replace("'", "").replace("’", "")
    folded = _NON_ALNUM_RE.sub(" ", folded)
    return _WS_RE.sub(" ", folded).strip()


def normalize_key_part(value: str | None) -> str:
    """Normalize a free-text value for use inside a dedup key."""
    if not value:
        return ""
    return _fold(value)


def normalize_venue_name(name: str | None) -> str:
    """Aggressive venue normalization used for name *comparison*.

    Drops filler words ("the", "bar", "grill" ...) so "The Rusty Nail Bar"
    and "Rusty Nail" compare equal.  Not used for dedup keys.
    """
    folded = normalize_key_part(name)
    stripped = _WS_RE.sub(" ", _VENUE_NOISE_RE.sub(" ", folded)).strip()
    return stripped or folded


def normalize_dj_name(name: str | None) -> str:
    """Strip a leading "DJ"/"KJ"/"MC" prefix and fold case."""
    folded = normalize_key_part(name)
    return re.sub(r"^(dj|kj|mc)\s+", "", folded)


def normalize_day(value: str | None) -> str | None:
    """Map a weekday spelling onto its canonical capitalized form.

    Returns ``None`` for an empty value and the stripped original text when
    it is not a recognizable weekday (free-text schedules such as
    "Every other Friday" are kept verbatim).
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    folded = _fold(text)
    token = folded.rstrip("s") if folded.endswith("days") else folded
    token = _DAY_ALIASES.get(token, token)
    if token in WEEKDAYS:
        return token.capitalize()
    return text


def names_match(a: str | None, b: str | None, threshold: float = 0.85) -> bool:
    """True when two venue names are the same place.

    Containment after normalization counts as a match ("Joe's" vs
    "Joe's Bar & Grill"); otherwise rapidfuzz ``token_sort_ratio`` must
    reach *threshold*.
    """
    left, right = normalize_venue_name(a), normalize_venue_name(b)
    if not left or not right:
        return False
    if left in right or right in left:
        return True
    return fuzz.token_sort_ratio(left, right) >= threshold * 100
