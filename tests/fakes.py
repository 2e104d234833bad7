"""Test doubles shared across the karaoke-scout test suite.

The browser fakes model just enough of Playwright's async ``Page`` for the
driver, popup handler, login detector and scroll loader: scripted
``evaluate`` results keyed by the script constant, selector handles, a
keyboard, and a context with a cookie jar.
"""

from __future__ import annotations

import json
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

from karaoke_scout.interfaces.browser_provider import IBrowserProvider
from karaoke_scout.interfaces.geocoding_provider import GeocodeResult, IGeocodingProvider
from karaoke_scout.interfaces.llm_provider import ILLMProvider
from karaoke_scout.models.extraction import PartialShowFields, RawExtractionResult
from karaoke_scout.models.targets import PromptKind
from karaoke_scout.services.extraction_engine import StructuredExtractionEngine
from karaoke_scout.services.prompts import SYSTEM_PROMPTS


async def no_sleep(_seconds: float) -> None:
    """Drop-in for ``asyncio.sleep`` that returns immediately."""


# ======================================================================
# Playwright page fakes
# ======================================================================


class FakeResponse:
    def __init__(self, status: int = 200, url: str | None = None) -> None:
        self.status = status
        self.url = url


class FakeHandle:
    def __init__(self, visible: bool = True, error: Exception | None = None) -> None:
        self.visible = visible
        self.error = error
        self.clicks = 0

    async def click(self, timeout: float | None = None) -> None:
        if self.error is not None:
            raise self.error
        self.clicks += 1

    async def is_visible(self) -> bool:
        return self.visible


class FakeKeyboard:
    def __init__(self) -> None:
        self.pressed: list[str] = []

    async def press(self, key: str) -> None:
        self.pressed.append(key)


class FakeContext:
    def __init__(self, cookies: list[dict] | None = None) -> None:
        self.jar: list[dict] = list(cookies or [])
        self.added: list[dict] = []
        self.closed = False

    async def add_cookies(self, cookies: list[dict]) -> None:
        self.added.extend(cookies)

    async def cookies(self) -> list[dict]:
        return list(self.jar)

    async def close(self) -> None:
        self.closed = True


class FakePage:
    """Scriptable stand-in for ``playwright.async_api.Page``.

    ``scripts`` maps a script constant from ``services/browser/scripts.py``
    to a value, an exception to raise, or a callable taking the script
    argument.  ``goto_effects`` is consumed one per navigation: a
    :class:`FakeResponse` (its ``url`` becomes the page URL), an exception
    to raise, or a callable ``(page, url) -> FakeResponse``.
    """

    def __init__(
        self,
        url: str = "about:blank",
        *,
        scripts: dict[str, Any] | None = None,
        selectors: dict[str, FakeHandle] | None = None,
        html: str = "",
        title: str = "Test page",
        goto_effects: list[Any] | None = None,
        screenshot: bytes = b"\x89PNG\r\n\x1a\nfake",
    ) -> None:
        self.url = url
        self.scripts: dict[str, Any] = dict(scripts or {})
        self.selectors: dict[str, FakeHandle] = dict(selectors or {})
        self.html = html
        self._title = title
        self.goto_effects: list[Any] = list(goto_effects or [])
        self.screenshot_bytes = screenshot
        self.keyboard = FakeKeyboard()
        self.context = FakeContext()
        self.visits: list[str] = []
        self.evaluated: list[tuple[str, Any]] = []
        self.filled: dict[str, str] = {}
        self.waits: list[int] = []
        self.screenshots = 0

    async def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None) -> Any:
        self.visits.append(url)
        effect = self.goto_effects.pop(0) if self.goto_effects else FakeResponse(200)
        if isinstance(effect, BaseException):
            raise effect
        if callable(effect):
            effect = effect(self, url)
        self.url = effect.url or url
        return effect

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluated.append((script, arg))
        value = self.scripts.get(script)
        if isinstance(value, BaseException):
            raise value
        if callable(value):
            return value(arg)
        return value

    async def query_selector(self, selector: str) -> FakeHandle | None:
        return self.selectors.get(selector)

    async def fill(self, selector: str, value: str) -> None:
        self.filled[selector] = value

    async def title(self) -> str:
        return self._title

    async def content(self) -> str:
        return self.html

    async def screenshot(self, type: str = "png", full_page: bool = False) -> bytes:  # noqa: A002
        self.screenshots += 1
        return self.screenshot_bytes

    async def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)

    async def wait_for_load_state(self, state: str = "load", timeout: float | None = None) -> None:
        return None

    def evaluations_of(self, script: str) -> list[Any]:
        return [arg for name, arg in self.evaluated if name == script]


class FakeBrowser(IBrowserProvider):
    """Hands out pre-built pages in order and records cookie seeding."""

    def __init__(self, pages: list[FakePage] | None = None, start_error: Exception | None = None) -> None:
        self.pages = list(pages or [])
        self.start_error = start_error
        self.started = 0
        self.closed = 0
        self.seeded: list[list[dict] | None] = []
        self.closed_pages: list[FakePage] = []

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started += 1

    async def new_page(self, cookies: list[dict] | None = None) -> FakePage:
        self.seeded.append(cookies)
        page = self.pages.pop(0) if self.pages else FakePage()
        if cookies:
            page.context.jar.extend(cookies)
        return page

    async def close_page(self, page: Any) -> None:
        self.closed_pages.append(page)
        await page.context.close()

    async def close(self) -> None:
        self.closed += 1

    def get_provider_name(self) -> str:
        return "fake-browser"


# ======================================================================
# Model provider fakes
# ======================================================================


def make_mock_llm(
    complete_responses: list[Any] | None = None,
    vision_responses: list[Any] | None = None,
    *,
    name: str = "mock-llm",
    available: bool = True,
    vision: bool = True,
) -> MagicMock:
    """Build a MagicMock satisfying ILLMProvider.

    Each response list is consumed in order; an item may be a string, a
    JSON-able object (serialized) or an exception to raise.
    """
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = name
    mock.is_available.return_value = available
    mock.supports_vision.return_value = vision
    mock.complete = AsyncMock(side_effect=_as_replies(complete_responses or []))
    mock.vision_extract = AsyncMock(side_effect=_as_replies(vision_responses or []))
    mock.validate_credentials = AsyncMock(return_value=available)
    return mock


def _as_replies(items: list[Any]) -> list[Any]:
    return [item if isinstance(item, (str, BaseException)) else json.dumps(item) for item in items]


class RoutingLLM(ILLMProvider):
    """LLM double that answers by prompt kind.

    ``handlers`` maps a :class:`PromptKind` to a callable receiving the
    user prompt (or, for vision calls, the image bytes) and returning the
    reply: a string, a JSON-able object, or an exception to raise.
    """

    def __init__(self, handlers: dict[PromptKind, Callable[[Any], Any]], name: str = "routing-llm") -> None:
        self._handlers = handlers
        self._name = name
        self.calls: list[tuple[PromptKind, Any]] = []

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> str:
        kind = next(k for k, prompt in SYSTEM_PROMPTS.items() if prompt == system_prompt)
        return self._reply(kind, user_prompt)

    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
        return self._reply(PromptKind.SHOW_DETAIL, image_bytes)

    def _reply(self, kind: PromptKind, arg: Any) -> str:
        self.calls.append((kind, arg))
        handler = self._handlers.get(kind)
        if handler is None:
            raise AssertionError(f"unexpected {kind.value} call")
        reply = handler(arg)
        if isinstance(reply, BaseException):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply)

    def calls_of(self, kind: PromptKind) -> list[Any]:
        return [arg for call_kind, arg in self.calls if call_kind == kind]

    def supports_vision(self) -> bool:
        return True

    def get_provider_name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return True

    async def validate_credentials(self) -> bool:
        return True


def make_engine(llm: ILLMProvider) -> StructuredExtractionEngine:
    return StructuredExtractionEngine(llm, sleep=no_sleep)


class StaticGeocoder(IGeocodingProvider):
    """Geocoder answering from a dict of address-substring -> result."""

    def __init__(self, answers: dict[str, GeocodeResult | Exception | None] | None = None) -> None:
        self.answers = dict(answers or {})
        self.queries: list[str] = []

    async def geocode(self, address: str) -> GeocodeResult | None:
        self.queries.append(address)
        for needle, answer in self.answers.items():
            if needle.lower() in address.lower():
                if isinstance(answer, Exception):
                    raise answer
                return answer
        return None

    def get_provider_name(self) -> str:
        return "static-geocoder"

    def is_available(self) -> bool:
        return True


# ======================================================================
# Record builders
# ======================================================================


def raw_result(
    job_index: int,
    *shows: PartialShowFields,
    source_url: str = "https://example.com/page",
    **extra: Any,
) -> RawExtractionResult:
    return RawExtractionResult(
        job_index=job_index, success=True, source_url=source_url, shows=list(shows), **extra
    )


def show(**fields: Any) -> PartialShowFields:
    return PartialShowFields(**fields)
