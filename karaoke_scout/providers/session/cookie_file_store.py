"""Persist browser cookies as one JSON file per session.

Layout: ``<cookies_dir>/<session_ref>.json`` containing::

    {"session_ref": "...", "login_verified_at": "...", "cookies": [...]}

A bare JSON list of cookies (the format browser extensions export) is
also accepted on load.  Credentials are never written to disk.
"""

from __future__ import annotations

import asyncio
import json
import re
from datetime import datetime
from pathlib import Path

import structlog

from karaoke_scout.interfaces.session_provider import ISessionStore
from karaoke_scout.models.targets import SessionState

logger = structlog.get_logger(logger_name=__name__)

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")

# Playwright's add_cookies() rejects unknown keys.
_COOKIE_KEYS = {"name", "value", "domain", "path", "expires", "httpOnly", "secure", "sameSite", "url"}
_SAME_SITE = {"strict": "Strict", "lax": "Lax", "none": "None", "no_restriction": "None"}


def sanitize_cookie(raw: dict) -> dict | None:
    """Reduce an exported cookie dict to what Playwright accepts."""
    if not raw.get("name") or "value" not in raw:
        return None
    cookie = {k: v for k, v in raw.items() if k in _COOKIE_KEYS}
    if "expirationDate" in raw and "expires" not in cookie:
        cookie["expires"] = float(raw["expirationDate"])
    same_site = cookie.get("sameSite")
    if same_site is not None:
        normalized = _SAME_SITE.get(str(same_site).lower())
        if normalized is None:
            cookie.pop("sameSite")
        else:
            cookie["sameSite"] = normalized
    if "url" not in cookie and "domain" not in cookie:
        return None
    return cookie


class CookieFileStore(ISessionStore):
    """:class:`ISessionStore` backed by JSON files in a directory."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def path_for(self, session_ref: str) -> Path:
        safe = _SAFE_NAME_RE.sub("_", session_ref).strip("._") or "default"
        return self._dir / f"{safe}.json"

    async def load(self, session_ref: str) -> SessionState | None:
        path = self.path_for(session_ref)
        if not path.exists():
            return None
        try:
            raw = await asyncio.to_thread(path.read_text, "utf-8")
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("cookie_file_unreadable", path=str(path), error=str(exc))
            return None

        verified_at = None
        if isinstance(data, dict):
            cookies_raw = data.get("cookies", [])
            stamp = data.get("login_verified_at")
            if stamp:
                try:
                    verified_at = datetime.fromisoformat(stamp)
                except ValueError:
                    verified_at = None
        else:
            cookies_raw = data
        if not isinstance(cookies_raw, list):
            return None

        cookies = [c for c in (sanitize_cookie(item) for item in cookies_raw if isinstance(item, dict)) if c]
        if not cookies:
            return None
        logger.info("cookies_loaded", session_ref=session_ref, count=len(cookies))
        return SessionState(
            session_ref=session_ref, cookies=cookies, login_verified_at=verified_at
        )

    async def save(self, state: SessionState) -> None:
        path = self.path_for(state.session_ref)
        body = json.dumps(
            {
                "session_ref": state.session_ref,
                "login_verified_at": (
                    state.login_verified_at.isoformat() if state.login_verified_at else None
                ),
                "cookies": state.cookies,
            },
            indent=2,
        )

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(body, encoding="utf-8")
            tmp.replace(path)

        await asyncio.to_thread(_write)
        logger.info("cookies_saved", session_ref=state.session_ref, count=len(state.cookies))
