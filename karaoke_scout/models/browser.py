"""Browser automation models: driver states and tagged scrape outcomes."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from karaoke_scout.models.targets import ExtractionTarget


class DriverState(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """States of :class:`~karaoke_scout.services.browser.driver.BrowserAutomationDriver`.

    NOT_LOADED → LOADING → LOGIN_CHECK → {LOGIN_REQUIRED | POPUP_CHECK}
    → {POPUP_PRESENT → POPUP_CHECK} → CONTENT_LOADING → READY
    → EXTRACTING → CLOSED
    """

    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOGIN_CHECK = "login_check"
    LOGIN_REQUIRED = "login_required"
    POPUP_CHECK = "popup_check"
    POPUP_PRESENT = "popup_present"
    CONTENT_LOADING = "content_loading"
    READY = "ready"
    EXTRACTING = "extracting"
    CLOSED = "closed"


class ScrapeFailureKind(str, Enum):  # noqa: UP042
    """Tagged failures a scrape may end in; never an uncategorized exception."""

    LOGIN_REQUIRED = "login_required"
    BLOCKED = "blocked"
    TIMEOUT = "timeout"
    NAVIGATION_ERROR = "navigation_error"


class LoginCheck(BaseModel):
    """Result of evaluating the login heuristics on the current page."""

    model_config = ConfigDict(frozen=True)

    required: bool
    reasons: list[str] = Field(default_factory=list)


class PopupDecision(BaseModel):
    """What a page classifier thinks should be clicked to clear an overlay.

    ``present=False`` means the classifier is confident nothing blocks the
    page.  ``present=True`` without a selector or button text is not
    actionable and the next strategy is consulted.
    """

    model_config = ConfigDict(frozen=True)

    present: bool
    selector: str | None = None
    button_text: str | None = None
    press_escape: bool = False
    strategy: str = ""
    reason: str | None = None

    @property
    def actionable(self) -> bool:
        return self.present and bool(self.selector or self.button_text or self.press_escape)


class PopupClearReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    rounds: int = 0
    dismissed: int = 0
    cleared: bool = True
    strategies_used: list[str] = Field(default_factory=list)


class ScrollReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    iterations: int = 0
    item_count: int = 0
    plateaued: bool = False
    hit_cap: bool = False


class ScrapeMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    final_url: str | None = None
    title: str | None = None
    group_name: str | None = None
    scroll: ScrollReport | None = None
    popups: PopupClearReport | None = None


class ScrapeOutcome(BaseModel):
    """Tagged result of one scrape: targets + metadata, or a failure kind."""

    model_config = ConfigDict(frozen=True)

    source_url: str
    success: bool
    targets: list[ExtractionTarget] = Field(default_factory=list)
    metadata: ScrapeMetadata = Field(default_factory=ScrapeMetadata)
    failure: ScrapeFailureKind | None = None
    message: str | None = None
    final_state: DriverState = DriverState.CLOSED
    state_trail: list[DriverState] = Field(default_factory=list)

    @classmethod
    def failed(
        cls,
        source_url: str,
        failure: ScrapeFailureKind,
        message: str,
        final_state: DriverState,
    ) -> ScrapeOutcome:
        return cls(
            source_url=source_url,
            success=False,
            failure=failure,
            message=message,
            final_state=final_state,
        )
