"""Reading extractable content off a loaded page.

Feed pages yield photo URLs; ordinary pages yield a text snapshot.  Text
extraction prefers trafilatura's boilerplate removal on the rendered
HTML and falls back to the in-page content selectors when trafilatura
returns nothing useful.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any
from urllib.parse import urlparse

import structlog
import trafilatura
from playwright.async_api import Error as PlaywrightError

from karaoke_scout.services.browser import scripts
from karaoke_scout.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

UNKNOWN_GROUP_NAME = "Unknown Facebook Group"

_CDN_HOST_MARKERS: tuple[str, ...] = ("scontent", "fbcdn", "cdninstagram")
_EXCLUDED_URL_MARKERS: tuple[str, ...] = ("profile", "avatar", "icon", "emoji", "reaction")
_MIN_IMAGE_SIDE = 100

# Lines in a group header that are UI chrome rather than the group's name.
_UI_WORDS: frozenset[str] = frozenset(
    {
        "facebook", "home", "groups", "group", "watch", "marketplace", "gaming",
        "notifications", "menu", "messenger", "search", "join group", "joined",
        "invite", "share", "more", "about", "discussion", "featured", "events",
        "media", "files", "members", "public group", "private group", "photos",
        "log in", "create new account", "forgot password?",
    }
)
_MEMBER_COUNT_RE = re.compile(r"^[\d.,]+[kKmM]?\s+members?$")


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


async def count_feed_images(page: Any) -> int:
    """Distinct content image URLs currently in the DOM."""
    try:
        return int(await page.evaluate(scripts.COUNT_FEED_IMAGES) or 0)
    except PlaywrightError as exc:
        logger.debug("count_feed_images_failed", error=exc.message)
        return 0


def is_content_image(candidate: dict[str, Any]) -> bool:
    """True for a CDN-hosted photo larger than a thumbnail and not UI chrome."""
    src = (candidate.get("src") or "").strip()
    if not src.startswith(("http://", "https://")):
        return False
    host = urlparse(src).netloc.lower()
    if not any(marker in host for marker in _CDN_HOST_MARKERS):
        return False
    lowered = src.lower()
    if any(marker in lowered for marker in _EXCLUDED_URL_MARKERS):
        return False
    try:
        width = int(candidate.get("width") or 0)
        height = int(candidate.get("height") or 0)
    except (TypeError, ValueError):
        return False
    return width > _MIN_IMAGE_SIDE and height > _MIN_IMAGE_SIDE


async def collect_feed_image_urls(page: Any) -> list[str]:
    """Photo URLs linked from ``a[href*="/photo"]`` anchors, deduplicated in DOM order."""
    try:
        candidates = await page.evaluate(scripts.FEED_IMAGES) or []
    except PlaywrightError as exc:
        logger.warning("feed_image_collection_failed", error=exc.message)
        return []

    seen: set[str] = set()
    urls: list[str] = []
    for candidate in candidates:
        if not isinstance(candidate, dict) or not is_content_image(candidate):
            continue
        src = candidate["src"].strip()
        if src in seen:
            continue
        seen.add(src)
        urls.append(src)
    logger.info("feed_images_collected", candidates=len(candidates), kept=len(urls))
    return urls


async def extract_page_text(page: Any) -> str:
    """Main text of the rendered page, or ``""`` when there is none."""
    try:
        html = await page.content()
    except PlaywrightError as exc:
        logger.debug("page_html_failed", error=exc.message)
        html = ""

    text = ""
    if html:
        extracted = await asyncio.to_thread(
            trafilatura.extract, html, include_comments=False, include_tables=True
        )
        text = (extracted or "").strip()

    if not text:
        try:
            text = (await page.evaluate(scripts.CONTENT_TEXT) or "").strip()
        except PlaywrightError as exc:
            logger.debug("content_selector_text_failed", error=exc.message)
            text = ""
    return text


async def header_text(page: Any) -> str:
    try:
        return (await page.evaluate(scripts.HEADER_TEXT) or "").strip()
    except PlaywrightError as exc:
        logger.debug("header_text_failed", error=exc.message)
        return ""


def fallback_group_name(header: str) -> str:
    """First header line that looks like a name rather than navigation."""
    for line in header.splitlines():
        candidate = line.strip()
        if not 5 <= len(candidate) <= 80:
            continue
        lowered = candidate.lower()
        if lowered in _UI_WORDS or _MEMBER_COUNT_RE.match(lowered):
            continue
        if lowered.endswith("| facebook"):
            candidate = candidate[: -len("| facebook")].strip()
            if len(candidate) < 5:
                continue
        return candidate
    return UNKNOWN_GROUP_NAME
