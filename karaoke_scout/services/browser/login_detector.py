"""Login-wall detection from DOM and URL heuristics.

Heuristics (any one suffices):

* URL contains a login-only path (``/login``, ``login.php``, ``/checkpoint``)
* a login form (``#login_form`` or a form posting to ``login``) is present
* ``#email`` together with ``#pass`` is present
* on gated group feeds only: a password input is present, or the
  logged-in navigation landmark (``[role="navigation"]``) is missing

Public pages legitimately embed password fields (newsletter widgets,
member areas), so the two weakest signals only apply to group feeds.
"""

from __future__ import annotations

from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError

from karaoke_scout.models.browser import LoginCheck
from karaoke_scout.models.targets import TargetKind
from karaoke_scout.services.browser import scripts
from karaoke_scout.utils.logging import get_logger

LOGIN_URL_MARKERS: tuple[str, ...] = ("/login", "login.php", "/checkpoint", "/accounts/login")


class LoginDetector:
    """Evaluates the login heuristics on the current page."""

    def __init__(self, url_markers: tuple[str, ...] = LOGIN_URL_MARKERS) -> None:
        self._url_markers = url_markers
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def check(self, page: Any, kind: TargetKind) -> LoginCheck:
        reasons: list[str] = []
        url = (page.url or "").lower()
        for marker in self._url_markers:
            if marker in url:
                reasons.append(f"url:{marker}")
                break

        try:
            probe = await page.evaluate(scripts.LOGIN_PROBE) or {}
        except PlaywrightError as exc:
            self._logger.debug("login_probe_failed", error=exc.message)
            probe = {}

        if probe.get("hasLoginForm"):
            reasons.append("login_form")
        if probe.get("hasEmailPass"):
            reasons.append("email_pass_fields")
        if kind == TargetKind.GROUP_FEED:
            if probe.get("hasPassword") and "email_pass_fields" not in reasons:
                reasons.append("password_field")
            if probe and not probe.get("hasNavigation"):
                reasons.append("no_navigation")

        check = LoginCheck(required=bool(reasons), reasons=reasons)
        self._logger.debug("login_check", url=page.url, required=check.required, reasons=reasons)
        return check
