"""Decode untyped model JSON into typed, all-optional records.

Parse, don't validate: every field a model returns passes through a small
typed coercer here before anything downstream trusts it.  A bad field is
*dropped* (and named in ``dropped``), never allowed to fail the record;
only a payload whose top-level shape is unrecognizable raises
:class:`ValidationFailureError`.

Key aliases are accepted because different prompts and models spell the
same field differently (``djName`` / ``dj_name`` / ``dj``; ``time`` /
``startTime``).
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any

from karaoke_scout.models.browser import PopupDecision
from karaoke_scout.models.extraction import (
    DJObservation,
    PartialShowFields,
    VendorObservation,
)
from karaoke_scout.utils.errors import ValidationFailureError
from karaoke_scout.utils.geo import is_valid_latitude, is_valid_longitude
from karaoke_scout.utils.text_normalizer import normalize_day

_NULL_STRINGS = {"", "null", "none", "n/a", "na", "unknown", "not specified", "-"}

_TIME_RANGE_RE = re.compile(r"^\s*(.+?)\s*(?:-|–|to|until)\s*(.+?)\s*$", re.IGNORECASE)

# field name -> accepted keys, in preference order
_SHOW_KEYS: dict[str, tuple[str, ...]] = {
    "venue": ("venue", "venueName", "venue_name", "name"),
    "address": ("address", "venueAddress", "street"),
    "city": ("city",),
    "state": ("state",),
    "zip": ("zip", "zipCode", "zip_code", "postalCode"),
    "day": ("day", "dayOfWeek", "day_of_week"),
    "start_time": ("startTime", "start_time", "time"),
    "end_time": ("endTime", "end_time"),
    "dj_name": ("djName", "dj_name", "dj", "host"),
    "venue_phone": ("venuePhone", "venue_phone", "phone"),
    "venue_website": ("venueWebsite", "venue_website", "website"),
    "description": ("description", "notes"),
}

_SHOW_DETAIL_KEYS = {"shows", "show", "djs", "dj", "vendors", "vendor", "isKaraokeEvent"}


@dataclass
class DecodedShowDetail:
    """Typed contents of one SHOW_DETAIL reply."""

    shows: list[PartialShowFields] = field(default_factory=list)
    djs: list[DJObservation] = field(default_factory=list)
    vendors: list[VendorObservation] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    not_relevant_reason: str | None = None
    model_confidence: float | None = None


@dataclass
class GeoCompletionItem:
    index: int
    fields: dict[str, Any]
    confidence: float | None = None


@dataclass
class VenueLookup:
    venue_found: bool
    confidence: float | None
    suggested: dict[str, Any] = field(default_factory=dict)
    time_issues: list[str] = field(default_factory=list)
    suggested_times: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Scalar coercers -- each returns (value, ok)
# ---------------------------------------------------------------------------

def _as_text(value: Any) -> tuple[str | None, bool]:
    if value is None:
        return None, True
    if isinstance(value, bool):
        return None, False
    if isinstance(value, (int, float)):
        return str(value), True
    if isinstance(value, str):
        text = " ".join(value.split())
        return (None if text.lower() in _NULL_STRINGS else text), True
    return None, False


def _as_float(value: Any) -> tuple[float | None, bool]:
    if value is None:
        return None, True
    if isinstance(value, bool):
        return None, False
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.lower() in _NULL_STRINGS:
            return None, True
        try:
            number = float(text)
        except ValueError:
            return None, False
    else:
        return None, False
    if not math.isfinite(number):
        return None, False
    return number, True


def _as_confidence(value: Any) -> tuple[float | None, bool]:
    number, ok = _as_float(value)
    if not ok or number is None:
        return None, ok
    if 0.0 <= number <= 1.0:
        return number, True
    return None, False


def _as_zip(value: Any) -> tuple[str | None, bool]:
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value:05d}", True
    return _as_text(value)


def _first_present(raw: dict[str, Any], keys: tuple[str, ...]) -> tuple[str | None, Any]:
    for key in keys:
        if key in raw:
            return key, raw[key]
    return None, None


# ---------------------------------------------------------------------------
# Show / DJ / vendor decoding
# ---------------------------------------------------------------------------

def decode_show_fields(raw: dict[str, Any], label: str, dropped: list[str]) -> PartialShowFields:
    """Coerce one show dict, dropping (and recording) invalid fields."""
    values: dict[str, Any] = {}

    for name, keys in _SHOW_KEYS.items():
        key, value = _first_present(raw, keys)
        if key is None:
            continue
        coerce = _as_zip if name == "zip" else _as_text
        coerced, ok = coerce(value)
        if not ok:
            dropped.append(f"{label}.{name}")
            continue
        values[name] = coerced

    if values.get("day") is not None:
        values["day"] = normalize_day(values["day"])

    # "time": "8 PM - 12 AM" carries both ends.
    start = values.get("start_time")
    if start and values.get("end_time") is None:
        match = _TIME_RANGE_RE.match(start)
        if match and any(ch.isdigit() for ch in match.group(2)):
            values["start_time"], values["end_time"] = match.group(1), match.group(2)

    for name, keys, check in (
        ("lat", ("lat", "latitude"), is_valid_latitude),
        ("lng", ("lng", "lon", "long", "longitude"), is_valid_longitude),
    ):
        key, value = _first_present(raw, keys)
        if key is None:
            continue
        number, ok = _as_float(value)
        if not ok or (number is not None and not check(number)):
            dropped.append(f"{label}.{name}")
            continue
        values[name] = number

    if "confidence" in raw:
        conf, ok = _as_confidence(raw["confidence"])
        if ok:
            values["confidence"] = conf
        else:
            dropped.append(f"{label}.confidence")

    return PartialShowFields(**values)


def _decode_dj(raw: Any, label: str, dropped: list[str]) -> DJObservation | None:
    if isinstance(raw, str):
        raw = {"name": raw}
    if not isinstance(raw, dict):
        dropped.append(label)
        return None
    name, ok = _as_text(raw.get("name"))
    if not ok or not name:
        dropped.append(label)
        return None
    aliases_raw = raw.get("aliases") or []
    aliases: list[str] = []
    if isinstance(aliases_raw, list):
        for alias in aliases_raw:
            text, ok = _as_text(alias)
            if ok and text and text != name:
                aliases.append(text)
    else:
        dropped.append(f"{label}.aliases")
    confidence, ok = _as_confidence(raw.get("confidence"))
    if not ok:
        dropped.append(f"{label}.confidence")
    context, ok = _as_text(raw.get("context"))
    return DJObservation(
        name=name,
        aliases=aliases,
        confidence=confidence,
        context=context if ok else None,
    )


def _decode_vendor(raw: Any, label: str, dropped: list[str]) -> VendorObservation | None:
    if isinstance(raw, str):
        raw = {"name": raw}
    if not isinstance(raw, dict):
        dropped.append(label)
        return None
    name, ok = _as_text(raw.get("name"))
    if not ok or not name:
        dropped.append(label)
        return None
    confidence, ok = _as_confidence(raw.get("confidence"))
    if not ok:
        dropped.append(f"{label}.confidence")
    website, _ = _as_text(raw.get("website"))
    description, _ = _as_text(raw.get("description"))
    return VendorObservation(
        name=name, website=website, description=description, confidence=confidence
    )


def _as_list(payload: dict[str, Any], plural: str, singular: str) -> list[Any]:
    value = payload.get(plural)
    if value is None:
        value = payload.get(singular)
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def decode_show_detail(payload: Any) -> DecodedShowDetail:
    """Decode a SHOW_DETAIL reply.

    Accepts the multi-entity schema (``shows``/``djs``/``vendors``), the
    single-entity web-page schema (``show``/``dj``/``vendor``) and a bare
    list of show objects.

    Raises
    ------
    ValidationFailureError
        If *payload* is neither a list nor a dict with any expected key.
    """
    if isinstance(payload, list):
        payload = {"shows": payload}
    if not isinstance(payload, dict) or not (_SHOW_DETAIL_KEYS & payload.keys()):
        shape = type(payload).__name__ if not isinstance(payload, dict) else sorted(payload)[:6]
        raise ValidationFailureError(f"Unrecognized show payload shape: {shape}")

    decoded = DecodedShowDetail()

    relevant = payload.get("isKaraokeEvent")
    if relevant is False or (isinstance(relevant, str) and relevant.lower() == "false"):
        reason, _ = _as_text(payload.get("reason"))
        decoded.not_relevant_reason = reason or "not a karaoke event"
        return decoded

    for i, raw in enumerate(_as_list(payload, "shows", "show")):
        label = f"shows[{i}]"
        if not isinstance(raw, dict):
            decoded.dropped.append(label)
            continue
        show = decode_show_fields(raw, label, decoded.dropped)
        if show.model_dump(exclude_none=True, exclude={"confidence"}):
            decoded.shows.append(show)

    for i, raw in enumerate(_as_list(payload, "djs", "dj")):
        dj = _decode_dj(raw, f"djs[{i}]", decoded.dropped)
        if dj is not None:
            decoded.djs.append(dj)

    for i, raw in enumerate(_as_list(payload, "vendors", "vendor")):
        vendor = _decode_vendor(raw, f"vendors[{i}]", decoded.dropped)
        if vendor is not None:
            decoded.vendors.append(vendor)

    confidences = [s.confidence for s in decoded.shows if s.confidence is not None]
    top, ok = _as_confidence(payload.get("confidence"))
    if ok and top is not None:
        confidences.append(top)
    decoded.model_confidence = max(confidences) if confidences else None
    return decoded


# ---------------------------------------------------------------------------
# Secondary prompt kinds
# ---------------------------------------------------------------------------

_GEO_FIELDS = ("address", "city", "state", "zip", "lat", "lng")


def decode_geo_completion(payload: Any) -> list[GeoCompletionItem]:
    """Decode a GEO_COMPLETION reply: an array of index-keyed objects."""
    if isinstance(payload, dict):
        for key in ("results", "records", "shows", "items"):
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break
        else:
            payload = [payload] if "index" in payload else None
    if not isinstance(payload, list):
        raise ValidationFailureError("Geo completion reply is not an array")

    items: list[GeoCompletionItem] = []
    for i, raw in enumerate(payload):
        if not isinstance(raw, dict):
            continue
        index, ok = _as_float(raw.get("index"))
        if not ok or index is None or index != int(index):
            continue
        dropped: list[str] = []
        show = decode_show_fields(
            {k: raw[k] for k in _GEO_FIELDS if k in raw}, f"items[{i}]", dropped
        )
        confidence, ok = _as_confidence(raw.get("confidence"))
        items.append(
            GeoCompletionItem(
                index=int(index),
                fields=show.model_dump(exclude_none=True, include=set(_GEO_FIELDS)),
                confidence=confidence if ok else None,
            )
        )
    return items


def decode_popup_decision(payload: Any, strategy: str) -> PopupDecision:
    if not isinstance(payload, dict) or "blocking" not in payload:
        raise ValidationFailureError("Popup reply lacks 'blocking'")
    blocking = payload.get("blocking") is True or str(payload.get("blocking")).lower() == "true"
    selector, _ = _as_text(payload.get("selector"))
    button_text, _ = _as_text(payload.get("buttonText") or payload.get("button_text"))
    reason, _ = _as_text(payload.get("reason"))
    return PopupDecision(
        present=blocking,
        selector=selector if blocking else None,
        button_text=button_text if blocking else None,
        strategy=strategy,
        reason=reason,
    )


def decode_group_name(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        raise ValidationFailureError("Group name reply is not an object")
    name, ok = _as_text(payload.get("groupName") or payload.get("group_name"))
    return name if ok else None


def decode_venue_lookup(payload: Any) -> VenueLookup:
    if not isinstance(payload, dict) or "venueFound" not in payload:
        raise ValidationFailureError("Venue lookup reply lacks 'venueFound'")
    confidence, ok = _as_confidence(payload.get("confidence"))
    suggested_raw = payload.get("suggestedData") or {}
    suggested: dict[str, Any] = {}
    if isinstance(suggested_raw, dict):
        remapped = dict(suggested_raw)
        if "name" in remapped:
            remapped["venue"] = remapped.pop("name")
        show = decode_show_fields(remapped, "suggestedData", [])
        suggested = show.model_dump(exclude_none=True, exclude={"confidence", "day"})
    issues_raw = payload.get("timeIssues") or []
    issues = [str(item) for item in issues_raw if item] if isinstance(issues_raw, list) else []
    times_raw = payload.get("suggestedTimes") or {}
    times: dict[str, str] = {}
    if isinstance(times_raw, dict):
        for src, dest in (("startTime", "start_time"), ("endTime", "end_time")):
            text, ok_t = _as_text(times_raw.get(src))
            if ok_t and text:
                times[dest] = text
    return VenueLookup(
        venue_found=payload.get("venueFound") is True,
        confidence=confidence if ok else None,
        suggested=suggested,
        time_issues=issues,
        suggested_times=times,
    )
