"""Browser automation driver: one target in, a tagged :class:`ScrapeOutcome` out.

The driver walks a page through the states in :class:`DriverState`::

    NOT_LOADED -> LOADING -> LOGIN_CHECK -> {LOGIN_REQUIRED | POPUP_CHECK}
    -> {POPUP_PRESENT -> POPUP_CHECK} -> CONTENT_LOADING -> READY
    -> EXTRACTING -> CLOSED

Every transition is logged and recorded on the outcome's ``state_trail``.
Failures end the walk with a :class:`ScrapeFailureKind`; the driver never
lets a Playwright exception escape :meth:`BrowserAutomationDriver.scrape`.

Group feeds are loaded from their ``/media`` tab, zoomed out and scrolled
until the photo count plateaus; each photo becomes a ``PHOTO`` target.
Ordinary pages yield one ``PAGE`` text target, or a full-page screenshot
as a ``PHOTO`` target when the page carries too little text.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from karaoke_scout.interfaces.browser_provider import IBrowserProvider
from karaoke_scout.interfaces.session_provider import ICredentialChannel
from karaoke_scout.models.browser import (
    DriverState,
    LoginCheck,
    PopupDecision,
    ScrapeFailureKind,
    ScrapeMetadata,
    ScrapeOutcome,
)
from karaoke_scout.models.events import SnapshotEvent
from karaoke_scout.models.targets import (
    Credentials,
    ExtractionTarget,
    PromptKind,
    SessionState,
    TargetKind,
)
from karaoke_scout.pipeline.progress_tracker import ProgressTracker
from karaoke_scout.pipeline.session_registry import SessionRegistry
from karaoke_scout.services import prompts
from karaoke_scout.services.browser import page_content, scripts
from karaoke_scout.services.browser.login_detector import LoginDetector
from karaoke_scout.services.browser.popup_handler import PopupHandler
from karaoke_scout.services.browser.scroll_loader import PlateauScrollLoader
from karaoke_scout.services.extraction_engine import StructuredExtractionEngine
from karaoke_scout.services.payload_decoder import decode_group_name
from karaoke_scout.utils.errors import BrowserAutomationError, ValidationFailureError
from karaoke_scout.utils.logging import get_logger

DEFAULT_LOGIN_URL = "https://www.facebook.com/login"
BLOCKED_STATUS_CODES: frozenset[int] = frozenset({403, 429})
BLOCKED_URL_MARKERS: tuple[str, ...] = ("/checkpoint/block", "/sorry/", "captcha")


class _ScrapeFailure(Exception):
    """Internal signal that ends a scrape with a tagged failure."""

    def __init__(self, kind: ScrapeFailureKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class _ScrapeRun:
    """Mutable per-scrape state; never shared between scrapes."""

    def __init__(self, target: ExtractionTarget, run_id: str, logger: structlog.BoundLogger) -> None:
        self.target = target
        self.run_id = run_id
        self.state = DriverState.NOT_LOADED
        self.trail: list[DriverState] = [DriverState.NOT_LOADED]
        self._logger = logger

    def transition(self, state: DriverState) -> None:
        self._logger.info(
            "scrape_state_transition",
            source_url=self.target.source_url,
            from_state=self.state.value,
            to_state=state.value,
        )
        self.state = state
        self.trail.append(state)


class BrowserAutomationDriver:
    """Turns a page or group-feed target into concrete extraction targets.

    Parameters
    ----------
    browser:
        Started :class:`IBrowserProvider`; the driver only opens and
        closes pages on it.
    sessions:
        The run's :class:`SessionRegistry`.
    engine:
        Used for the group-name prompt.  ``None`` disables it and the
        header heuristic is used instead.
    credential_channel:
        Interactive channel consulted when a login wall is hit.  Without
        one, a login wall is a non-retryable ``LOGIN_REQUIRED`` failure.
    tracker:
        Receives status and snapshot events.
    """

    def __init__(
        self,
        browser: IBrowserProvider,
        sessions: SessionRegistry,
        login_detector: LoginDetector,
        popup_handler: PopupHandler,
        scroll_loader: PlateauScrollLoader,
        engine: StructuredExtractionEngine | None = None,
        credential_channel: ICredentialChannel | None = None,
        tracker: ProgressTracker | None = None,
        *,
        navigation_timeout_ms: int = 30000,
        navigation_retries: int = 2,
        feed_zoom: float = 0.5,
        min_text_chars: int = 200,
        credential_timeout: float = 10.0,
        snapshots_enabled: bool = False,
        login_url: str = DEFAULT_LOGIN_URL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._browser = browser
        self._sessions = sessions
        self._login = login_detector
        self._popups = popup_handler
        self._scroller = scroll_loader
        self._engine = engine
        self._channel = credential_channel
        self._tracker = tracker
        self._navigation_timeout_ms = navigation_timeout_ms
        self._navigation_retries = navigation_retries
        self._feed_zoom = feed_zoom
        self._min_text_chars = min_text_chars
        self._credential_timeout = credential_timeout
        self._snapshots_enabled = snapshots_enabled
        self._login_url = login_url
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def scrape(self, target: ExtractionTarget, run_id: str = "-") -> ScrapeOutcome:
        """Scrape *target*.  Always returns; failures are tagged on the outcome."""
        run = _ScrapeRun(target, run_id, self._logger)
        session = await self._sessions.get(target.session_ref) if target.session_ref else None

        try:
            page = await self._browser.new_page(session.cookies if session else None)
        except BrowserAutomationError as exc:
            self._logger.error("scrape_page_open_failed", source_url=target.source_url, error=str(exc))
            outcome = ScrapeOutcome.failed(
                target.source_url, ScrapeFailureKind.NAVIGATION_ERROR, exc.message, run.state
            )
            return outcome.model_copy(update={"state_trail": list(run.trail)})

        try:
            outcome = await self._drive(run, page, session)
        except _ScrapeFailure as failure:
            outcome = self._failed(run, failure.kind, failure.message)
        except PlaywrightTimeoutError as exc:
            outcome = self._failed(run, ScrapeFailureKind.TIMEOUT, exc.message)
        except PlaywrightError as exc:
            outcome = self._failed(run, ScrapeFailureKind.NAVIGATION_ERROR, exc.message)
        finally:
            await self._browser.close_page(page)
            run.transition(DriverState.CLOSED)

        return outcome.model_copy(update={"state_trail": list(run.trail)})

    # ------------------------------------------------------------------
    # Private helpers: the state walk
    # ------------------------------------------------------------------

    async def _drive(self, run: _ScrapeRun, page: Any, session: SessionState | None) -> ScrapeOutcome:
        target = run.target
        url = self._entry_url(target)

        await self._load(run, page, url)
        if (await self._login_check(run, page)).required:
            run.transition(DriverState.LOGIN_REQUIRED)
            await self._recover_login(run, page, url, session)

        run.transition(DriverState.POPUP_CHECK)
        popups = await self._popups.clear(page, on_popup=lambda decision: self._on_popup(run, decision))
        if run.state == DriverState.POPUP_PRESENT:
            run.transition(DriverState.POPUP_CHECK)

        run.transition(DriverState.CONTENT_LOADING)
        if target.kind == TargetKind.GROUP_FEED:
            await page.evaluate(scripts.SET_ZOOM, self._feed_zoom)
            scroll = await self._scroller.load(page, page_content.count_feed_images)
        else:
            scroll = await self._scroller.load(page, _text_length, max_iterations=3)

        run.transition(DriverState.READY)
        await self._snapshot(run, page)
        title = await page.title()
        group_name = await self._group_name(page) if target.kind == TargetKind.GROUP_FEED else None
        metadata = ScrapeMetadata(
            final_url=page.url, title=title, group_name=group_name, scroll=scroll, popups=popups
        )

        run.transition(DriverState.EXTRACTING)
        if target.kind == TargetKind.GROUP_FEED:
            targets = await self._feed_targets(page, target)
        else:
            targets = await self._page_targets(page, target)

        self._logger.info(
            "scrape_complete",
            source_url=target.source_url,
            kind=target.kind.value,
            targets=len(targets),
            group_name=group_name,
        )
        return ScrapeOutcome(
            source_url=target.source_url,
            success=True,
            targets=targets,
            metadata=metadata,
            final_state=DriverState.CLOSED,
        )

    async def _load(self, run: _ScrapeRun, page: Any, url: str) -> None:
        """Navigate with retries on transient network errors, then check for blocks."""
        run.transition(DriverState.LOADING)
        self._status(run, f"Loading {url}")
        response = None
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await page.goto(
                    url, wait_until="domcontentloaded", timeout=self._navigation_timeout_ms
                )
                break
            except PlaywrightTimeoutError as exc:
                raise _ScrapeFailure(ScrapeFailureKind.TIMEOUT, f"Navigation timed out: {url}") from exc
            except PlaywrightError as exc:
                if "net::ERR" in exc.message and attempt <= self._navigation_retries:
                    self._logger.warning(
                        "navigation_retry", url=url, attempt=attempt, error=exc.message
                    )
                    await self._sleep(float(attempt))
                    continue
                raise _ScrapeFailure(ScrapeFailureKind.NAVIGATION_ERROR, exc.message) from exc

        reason = await self._block_reason(page, response)
        if reason is not None:
            self._logger.warning("scrape_blocked", url=url, reason=reason)
            raise _ScrapeFailure(ScrapeFailureKind.BLOCKED, reason)

    async def _block_reason(self, page: Any, response: Any) -> str | None:
        status = getattr(response, "status", None)
        if status in BLOCKED_STATUS_CODES:
            return f"HTTP {status}"
        current = (page.url or "").lower()
        for marker in BLOCKED_URL_MARKERS:
            if marker in current:
                return f"redirected to {marker}"
        try:
            if await page.evaluate(scripts.BLOCK_PROBE):
                return "block page content"
        except PlaywrightError as exc:
            self._logger.debug("block_probe_failed", error=exc.message)
        return None

    async def _login_check(self, run: _ScrapeRun, page: Any) -> LoginCheck:
        run.transition(DriverState.LOGIN_CHECK)
        return await self._login.check(page, run.target.kind)

    def _on_popup(self, run: _ScrapeRun, decision: PopupDecision) -> None:
        if run.state == DriverState.POPUP_PRESENT:
            run.transition(DriverState.POPUP_CHECK)
        run.transition(DriverState.POPUP_PRESENT)

    # ------------------------------------------------------------------
    # Private helpers: login recovery
    # ------------------------------------------------------------------

    async def _recover_login(
        self,
        run: _ScrapeRun,
        page: Any,
        url: str,
        stale: SessionState | None,
    ) -> None:
        """Log in through the registry and re-check, or raise LOGIN_REQUIRED."""
        target = run.target
        if not target.session_ref or self._channel is None or not self._channel.is_available():
            raise _ScrapeFailure(
                ScrapeFailureKind.LOGIN_REQUIRED, "Login wall hit and no credentials available"
            )

        async def _authenticate() -> SessionState | None:
            credentials = stale.credentials if stale is not None else None
            if credentials is None:
                self._status(run, "Waiting for login credentials")
                credentials = await self._channel.request(
                    target.session_ref, target.source_url, self._credential_timeout, run_id=run.run_id
                )
            if credentials is None:
                return None
            return await self._submit_login(page, target.session_ref, credentials)

        state = await self._sessions.authenticate(target.session_ref, _authenticate, stale=stale)
        if state is None:
            raise _ScrapeFailure(ScrapeFailureKind.LOGIN_REQUIRED, "Login did not succeed")

        # Another task may have logged in; its cookies are not in this context yet.
        await page.context.add_cookies(state.cookies)
        await self._load(run, page, url)
        if (await self._login_check(run, page)).required:
            run.transition(DriverState.LOGIN_REQUIRED)
            raise _ScrapeFailure(
                ScrapeFailureKind.LOGIN_REQUIRED, "Still behind a login wall after authenticating"
            )

    async def _submit_login(
        self, page: Any, session_ref: str, credentials: Credentials
    ) -> SessionState | None:
        if await page.query_selector("#email") is None:
            await page.goto(self._login_url, wait_until="domcontentloaded", timeout=self._navigation_timeout_ms)
        await page.fill("#email", credentials.username)
        await page.fill("#pass", credentials.password.get_secret_value())
        await page.keyboard.press("Enter")
        try:
            await page.wait_for_load_state("networkidle", timeout=self._navigation_timeout_ms)
        except PlaywrightTimeoutError:
            pass

        if (await self._login.check(page, TargetKind.PAGE)).required:
            self._logger.warning("login_rejected", session_ref=session_ref, url=page.url)
            return None
        cookies = await page.context.cookies()
        return SessionState.verified(session_ref, cookies, credentials)

    # ------------------------------------------------------------------
    # Private helpers: content
    # ------------------------------------------------------------------

    async def _feed_targets(self, page: Any, target: ExtractionTarget) -> list[ExtractionTarget]:
        urls = await page_content.collect_feed_image_urls(page)
        if not urls:
            self._logger.warning("feed_without_photos", source_url=target.source_url)
        return [
            ExtractionTarget(
                source_url=url,
                kind=TargetKind.PHOTO,
                session_ref=target.session_ref,
                page_url=target.source_url,
            )
            for url in urls
        ]

    async def _page_targets(self, page: Any, target: ExtractionTarget) -> list[ExtractionTarget]:
        text = await page_content.extract_page_text(page)
        if len(text) >= self._min_text_chars:
            return [
                ExtractionTarget(
                    source_url=target.source_url,
                    kind=TargetKind.PAGE,
                    session_ref=target.session_ref,
                    text=text,
                    page_url=page.url,
                )
            ]
        self._logger.info(
            "page_text_too_short", source_url=target.source_url, chars=len(text)
        )
        image = await page.screenshot(type="png", full_page=True)
        return [
            ExtractionTarget(
                source_url=target.source_url,
                kind=TargetKind.PHOTO,
                session_ref=target.session_ref,
                image_bytes=image,
                page_url=page.url,
            )
        ]

    async def _group_name(self, page: Any) -> str:
        header = await page_content.header_text(page)
        if header and self._engine is not None and self._engine.is_available():
            outcome = await self._engine.run_prompt(
                PromptKind.GROUP_NAME, prompts.group_name_prompt(header), max_tokens=100
            )
            if outcome.ok:
                try:
                    name = decode_group_name(outcome.payload)
                except ValidationFailureError as exc:
                    self._logger.debug("group_name_reply_rejected", error=exc.message)
                    name = None
                if name:
                    return name
        return page_content.fallback_group_name(header)

    async def _snapshot(self, run: _ScrapeRun, page: Any) -> None:
        if not self._snapshots_enabled or self._tracker is None:
            return
        try:
            image = await page.screenshot(type="png", full_page=False)
        except PlaywrightError as exc:
            self._logger.debug("snapshot_failed", error=exc.message)
            return
        self._tracker.publish(
            SnapshotEvent(
                run_id=run.run_id,
                source_url=run.target.source_url,
                state=run.state.value,
                image_png=image,
            )
        )

    def _status(self, run: _ScrapeRun, message: str) -> None:
        if self._tracker is not None:
            self._tracker.status(run.run_id, message, stage=run.state.value)

    def _failed(self, run: _ScrapeRun, kind: ScrapeFailureKind, message: str) -> ScrapeOutcome:
        self._logger.warning(
            "scrape_failed",
            source_url=run.target.source_url,
            failure=kind.value,
            state=run.state.value,
            error=message,
        )
        return ScrapeOutcome.failed(run.target.source_url, kind, message, run.state)

    @staticmethod
    def _entry_url(target: ExtractionTarget) -> str:
        url = target.source_url
        if target.kind == TargetKind.GROUP_FEED:
            url = url.rstrip("/")
            if not url.endswith("/media"):
                url = f"{url}/media"
        return url


async def _text_length(page: Any) -> int:
    try:
        return int(await page.evaluate(scripts.TEXT_LENGTH) or 0)
    except PlaywrightError:
        return 0
