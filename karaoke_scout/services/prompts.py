"""Prompt/schema contracts for every :class:`PromptKind`.

Each prompt fixes the JSON shape the model must return and tells it to
use ``null`` rather than guess.  The payload decoder
(``services/payload_decoder.py``) is the other half of each contract.
"""

from __future__ import annotations

import json
from typing import Any

from karaoke_scout.models.targets import PromptKind

_NULL_RULE = (
    "If a value is not clearly supported by the input, use null. "
    "Never invent addresses, coordinates, phone numbers or websites."
)

SYSTEM_PROMPTS: dict[PromptKind, str] = {
    PromptKind.SHOW_DETAIL: (
        "You extract karaoke show schedules from flyers, screenshots and web "
        "pages. You return only valid JSON matching the requested schema. "
        + _NULL_RULE
    ),
    PromptKind.GEO_COMPLETION: (
        "You complete missing location details for karaoke venues in the "
        "United States. You return only a JSON array. " + _NULL_RULE
    ),
    PromptKind.POPUP_CLASSIFICATION: (
        "You inspect the visible buttons of a web page and decide whether a "
        "blocking dialog is open. You return only valid JSON."
    ),
    PromptKind.GROUP_NAME: (
        "You read header text from a social media group page and return its "
        "name as JSON."
    ),
    PromptKind.VENUE_LOOKUP: (
        "You verify karaoke venue listings against your knowledge of real "
        "businesses. You return only valid JSON. " + _NULL_RULE
    ),
}

_SHOW_SCHEMA = """{
  "isKaraokeEvent": true,
  "reason": "short explanation",
  "vendors": [
    {"name": "company name", "website": "url or null",
     "description": "what they do or null", "confidence": 0.0}
  ],
  "djs": [
    {"name": "host name", "aliases": ["other names"],
     "context": "where/how they appear", "confidence": 0.0}
  ],
  "shows": [
    {"venue": "venue name", "address": "street address or null",
     "city": "city or null", "state": "two-letter state or null",
     "zip": "zip or null", "lat": null, "lng": null,
     "day": "weekday, e.g. Monday", "startTime": "e.g. 8:00 PM",
     "endTime": "e.g. 12:00 AM or null", "djName": "host or null",
     "venuePhone": "phone or null", "venueWebsite": "url or null",
     "description": "any extra detail or null", "confidence": 0.0}
  ]
}"""


def show_detail_image_prompt(source_url: str | None = None) -> str:
    """Instruction sent alongside an image for show extraction."""
    origin = f"The image came from {source_url}.\n" if source_url else ""
    return (
        f"{origin}"
        "Decide whether this image advertises one or more recurring karaoke "
        "shows (flyers, weekly schedules, chalkboards, posts). If it does not, "
        'return {"isKaraokeEvent": false, "reason": "...", "vendors": [], '
        '"djs": [], "shows": []}.\n'
        "Otherwise list every show you can read. One entry per venue and "
        "weekday. Use 12-hour times as written.\n"
        f"{_NULL_RULE}\n"
        "Respond with JSON only, using exactly this schema:\n"
        f"{_SHOW_SCHEMA}"
    )


def show_detail_text_prompt(text: str, source_url: str | None = None, chunk: int = 0) -> str:
    """Instruction for extracting shows from a page's text snapshot."""
    part = f" (part {chunk + 1})" if chunk else ""
    origin = f"Page URL: {source_url}{part}\n" if source_url else ""
    return (
        f"{origin}"
        "Below is text captured from a web page about karaoke. Extract every "
        "recurring karaoke show, every karaoke host/DJ and the karaoke "
        "company (vendor) that runs them.\n"
        f"{_NULL_RULE}\n"
        "Respond with JSON only, using exactly this schema:\n"
        f"{_SHOW_SCHEMA}\n\n"
        "--- PAGE TEXT ---\n"
        f"{text}\n"
        "--- END PAGE TEXT ---"
    )


def geo_completion_prompt(items: list[dict[str, Any]]) -> str:
    """Ask for missing location fields of several shows in one call.

    ``items`` are dicts with ``index``, the known context fields, and a
    ``missing`` list naming the fields to fill.
    """
    listing = "\n".join(json.dumps(item, ensure_ascii=False) for item in items)
    return (
        "Each line below is a karaoke show with some location details "
        "missing. For each one, fill ONLY the fields listed in \"missing\" "
        "using the venue name, address, city, DJ and vendor as context.\n"
        f"{_NULL_RULE}\n"
        "Return a JSON array with one object per input line:\n"
        '[{"index": 0, "address": null, "city": null, "state": null, '
        '"zip": null, "lat": null, "lng": null, "confidence": 0.0}]\n'
        "confidence is your certainty (0.0-1.0) that the filled values are "
        "correct for this exact venue.\n\n"
        f"{listing}"
    )


def popup_classification_prompt(elements: list[dict[str, Any]], page_url: str) -> str:
    listing = json.dumps(elements, ensure_ascii=False, indent=1)
    return (
        f"Page: {page_url}\n"
        "These are the visible interactive elements, each with an index, "
        "tag, text, aria-label, role and a CSS selector:\n"
        f"{listing}\n\n"
        "Is a blocking dialog open (login nag, notification-permission "
        "prompt, cookie consent, 'open in app' banner)? If so, which element "
        "dismisses it WITHOUT logging in, subscribing or granting "
        "permissions (prefer 'Not now', 'Close', 'Decline optional', "
        "'Block')?\n"
        'Respond with JSON only: {"blocking": true, "selector": "css or '
        'null", "buttonText": "exact text or null", "reason": "..."}'
    )


def group_name_prompt(header_text: str) -> str:
    return (
        "This text was captured from the header of a Facebook group page. "
        "Return the group's name, ignoring navigation labels, member counts "
        "and buttons.\n"
        'Respond with JSON only: {"groupName": "name or null"}\n\n'
        f"{header_text[:2000]}"
    )


def venue_lookup_prompt(show: dict[str, Any]) -> str:
    return (
        "Verify this karaoke show listing:\n"
        f"{json.dumps(show, ensure_ascii=False)}\n\n"
        "Does this venue exist at this location? Suggest corrections for "
        "wrong or missing address, city, state, zip, coordinates, phone or "
        "website, and report obviously wrong show times (e.g. a karaoke "
        "start time in the morning).\n"
        f"{_NULL_RULE}\n"
        "Respond with JSON only:\n"
        '{"venueFound": true, "confidence": 0.0, '
        '"suggestedData": {"name": null, "address": null, "city": null, '
        '"state": null, "zip": null, "lat": null, "lng": null, '
        '"phone": null, "website": null}, '
        '"timeIssues": ["..."], '
        '"suggestedTimes": {"startTime": null, "endTime": null}}'
    )
