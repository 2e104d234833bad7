"""Integration tests for the ShowExtractionPipeline orchestrator.

The real dispatcher, extraction engine, image fetcher and reconciliation
engine run end to end; the model, the geocoder, the HTTP transport and the
browser driver are doubles.
"""

from __future__ import annotations

import httpx
import pytest

from fakes import (
    FakeBrowser,
    RoutingLLM,
    StaticGeocoder,
    make_engine,
    make_mock_llm,
    no_sleep,
    raw_result,
    show,
)
from karaoke_scout.interfaces.geocoding_provider import GeocodeResult
from karaoke_scout.models.browser import DriverState, ScrapeFailureKind, ScrapeOutcome
from karaoke_scout.models.events import PercentEvent, StatusEvent
from karaoke_scout.models.extraction import ErrorKind
from karaoke_scout.models.records import RecordStatus
from karaoke_scout.models.targets import ExtractionTarget, PromptKind, TargetKind
from karaoke_scout.pipeline.dispatcher import TaskDispatcher
from karaoke_scout.pipeline.orchestrator import ShowExtractionPipeline, needs_browser
from karaoke_scout.pipeline.progress_tracker import ProgressTracker
from karaoke_scout.services.image_fetcher import ImageFetcher
from karaoke_scout.services.reconciliation.engine import ReconciliationEngine
from karaoke_scout.utils.errors import BrowserAutomationError, PipelineError

RUSTY = (39.9612, -82.9988)
BLUE_MOON = (39.9840, -83.0050)

GROUP_URL = "https://www.facebook.com/groups/42"
EVENTS_URL = "https://bar.example/events"
MISSING_PHOTO = "https://cdn.example/gone.jpg"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _ScriptedDriver:
    """Stands in for BrowserAutomationDriver: one canned outcome per URL."""

    def __init__(self, outcomes: dict[str, ScrapeOutcome]) -> None:
        self.outcomes = outcomes
        self.scraped: list[str] = []

    async def scrape(self, target: ExtractionTarget, run_id: str | None = None) -> ScrapeOutcome:
        self.scraped.append(target.source_url)
        return self.outcomes[target.source_url]


def _show_detail(arg: object) -> dict:
    if isinstance(arg, bytes):
        return {
            "isKaraokeEvent": True,
            "shows": [{"venue": "Blue Moon", "city": "Columbus", "day": "Saturday", "startTime": "8 PM"}],
        }
    if "12 Main St" in arg:
        return {
            "isKaraokeEvent": True,
            "shows": [
                {
                    "venue": "Rusty Nail",
                    "address": "12 Main St",
                    "city": "Columbus",
                    "state": "OH",
                    "zip": "43215",
                    "lat": RUSTY[0],
                    "lng": RUSTY[1],
                    "day": "Friday",
                    "startTime": "9 PM",
                    "confidence": 0.9,
                }
            ],
            "djs": [{"name": "DJ Sparkle"}],
        }
    return {
        "isKaraokeEvent": True,
        "shows": [{"venue": "Rusty Nail", "city": "Columbus", "day": "Fridays", "startTime": "9 PM"}],
    }


def _geo_completion(prompt: object) -> list[dict]:
    return [{"index": 0, "state": "OH", "zip": "43201", "confidence": 0.95}]


def _image_server(small_png: bytes) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == MISSING_PHOTO:
            return httpx.Response(404)
        return httpx.Response(200, content=small_png, headers={"content-type": "image/png"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _pipeline(
    llm,
    tracker: ProgressTracker,
    *,
    driver: _ScriptedDriver | None = None,
    browser: FakeBrowser | None = None,
    http: httpx.AsyncClient | None = None,
    geocoder: StaticGeocoder | None = None,
) -> ShowExtractionPipeline:
    engine = make_engine(llm)
    return ShowExtractionPipeline(
        engine,
        TaskDispatcher(concurrency=2, job_timeout=5.0, inter_batch_delay=0.0, sleep=no_sleep),
        ReconciliationEngine(engine, geocoder),
        tracker,
        driver=driver,
        browser=browser,
        image_fetcher=ImageFetcher(http) if http is not None else None,
    )


# ---------------------------------------------------------------------------
# Full run
# ---------------------------------------------------------------------------


class TestFullRun:
    @pytest.mark.asyncio()
    async def test_mixed_sources(self, tracker: ProgressTracker, events: list, small_png: bytes) -> None:
        llm = RoutingLLM(
            {PromptKind.SHOW_DETAIL: _show_detail, PromptKind.GEO_COMPLETION: _geo_completion}
        )
        scraped_page = ExtractionTarget(
            source_url=EVENTS_URL,
            kind=TargetKind.PAGE,
            text="Friday karaoke with DJ Sparkle at Rusty Nail, 9 PM",
        )
        driver = _ScriptedDriver(
            {
                GROUP_URL: ScrapeOutcome.failed(
                    GROUP_URL,
                    ScrapeFailureKind.LOGIN_REQUIRED,
                    "login wall and no credential channel",
                    final_state=DriverState.LOGIN_REQUIRED,
                ),
                EVENTS_URL: ScrapeOutcome(source_url=EVENTS_URL, success=True, targets=[scraped_page]),
            }
        )
        browser = FakeBrowser()
        geocoder = StaticGeocoder(
            {
                "12 Main St": GeocodeResult(lat=RUSTY[0], lng=RUSTY[1]),
                "Blue Moon": GeocodeResult(lat=BLUE_MOON[0], lng=BLUE_MOON[1]),
            }
        )
        targets = [
            ExtractionTarget(
                source_url="https://rustynail.example/karaoke",
                kind=TargetKind.PAGE,
                text="Karaoke every Friday at the Rusty Nail, 12 Main St, 9 PM",
            ),
            ExtractionTarget(source_url="upload://flyer.png", kind=TargetKind.PHOTO, image_bytes=small_png),
            ExtractionTarget(source_url=GROUP_URL, kind=TargetKind.GROUP_FEED, session_ref="fb"),
            ExtractionTarget(source_url=MISSING_PHOTO, kind=TargetKind.PHOTO),
            ExtractionTarget(source_url=EVENTS_URL, kind=TargetKind.PAGE),
        ]

        async with _image_server(small_png) as http:
            pipeline = _pipeline(llm, tracker, driver=driver, browser=browser, http=http, geocoder=geocoder)
            run = await pipeline.run(targets, run_id="run-42")
        await tracker.drain()

        # Scrape stage: only browser targets, browser opened and closed once.
        assert driver.scraped == [GROUP_URL, EVENTS_URL]
        assert (browser.started, browser.closed) == (1, 1)
        assert [(f.source_url, f.failure) for f in run.target_failures] == [
            (GROUP_URL, ScrapeFailureKind.LOGIN_REQUIRED)
        ]

        # Rusty Nail seen twice (job 0 and the scraped page, job 3) becomes one record.
        by_venue = {show.venue: show for show in run.shows}
        assert set(by_venue) == {"Rusty Nail", "Blue Moon"}
        rusty = by_venue["Rusty Nail"]
        assert rusty.job_indices == [0, 3]
        assert set(rusty.source_urls) == {"https://rustynail.example/karaoke", EVENTS_URL}
        assert rusty.status == RecordStatus.VALIDATED
        assert (rusty.lat, rusty.lng) == RUSTY

        # Blue Moon came from the photo: completed by the model, then geocoded.
        blue = by_venue["Blue Moon"]
        assert (blue.state, blue.zip) == ("OH", "43201")
        assert (blue.lat, blue.lng) == BLUE_MOON
        assert blue.status == RecordStatus.GEO_FIXED
        assert len(llm.calls_of(PromptKind.GEO_COMPLETION)) == 1

        assert [dj.name for dj in run.djs] == ["DJ Sparkle"]

        s = run.summary
        assert (s.sources, s.sources_failed) == (5, 1)
        assert (s.jobs, s.succeeded, s.failed) == (4, 3, 1)
        assert (s.shows, s.validated, s.geo_fixed) == (2, 1, 1)
        assert s.error_kinds == {ErrorKind.PROVIDER_ERROR: 1}
        assert run.metadata["llm_provider"] == "routing-llm"
        assert set(run.metadata["scrapes"]) == {EVENTS_URL}

        # Progress: stages announced in order, percent never goes backwards.
        stages = [e.stage for e in events if isinstance(e, StatusEvent)]
        assert stages == ["start", "scrape", "extract", "reconcile", "complete"]
        percents = [e.percent for e in events if isinstance(e, PercentEvent)]
        assert percents == sorted(percents)
        assert percents[-1] == 100.0
        assert all(e.run_id == "run-42" for e in events)

    @pytest.mark.asyncio()
    async def test_photos_only_need_no_browser(self, tracker: ProgressTracker, small_png: bytes) -> None:
        llm = RoutingLLM({PromptKind.SHOW_DETAIL: _show_detail})
        run = await _pipeline(llm, tracker).run(
            [ExtractionTarget(source_url="upload://a.png", kind=TargetKind.PHOTO, image_bytes=small_png)]
        )
        assert [show.venue for show in run.shows] == ["Blue Moon"]
        assert run.summary.jobs == 1
        assert run.run_id

    @pytest.mark.asyncio()
    async def test_empty_run(self, tracker: ProgressTracker) -> None:
        run = await _pipeline(RoutingLLM({}), tracker).run([])
        assert run.shows == []
        assert run.summary.jobs == 0


# ---------------------------------------------------------------------------
# Setup failures
# ---------------------------------------------------------------------------


class TestSetupFailures:
    @pytest.mark.asyncio()
    async def test_no_model(self, tracker: ProgressTracker) -> None:
        pipeline = _pipeline(make_mock_llm(available=False), tracker)
        with pytest.raises(PipelineError):
            await pipeline.run([ExtractionTarget(source_url="upload://a", kind=TargetKind.PHOTO, image_bytes=b"x")])

    @pytest.mark.asyncio()
    async def test_page_without_browser(self, tracker: ProgressTracker) -> None:
        pipeline = _pipeline(make_mock_llm(), tracker)
        with pytest.raises(PipelineError, match="no browser"):
            await pipeline.run([ExtractionTarget(source_url=EVENTS_URL, kind=TargetKind.PAGE)])

    @pytest.mark.asyncio()
    async def test_photo_url_without_fetcher(self, tracker: ProgressTracker) -> None:
        pipeline = _pipeline(make_mock_llm(), tracker)
        with pytest.raises(PipelineError, match="image fetcher"):
            await pipeline.run([ExtractionTarget(source_url=MISSING_PHOTO, kind=TargetKind.PHOTO)])

    @pytest.mark.asyncio()
    async def test_browser_launch_failure(self, tracker: ProgressTracker) -> None:
        browser = FakeBrowser(start_error=BrowserAutomationError("no chromium", "playwright"))
        pipeline = _pipeline(make_mock_llm(), tracker, driver=_ScriptedDriver({}), browser=browser)
        with pytest.raises(PipelineError, match="Browser could not be started"):
            await pipeline.run([ExtractionTarget(source_url=EVENTS_URL, kind=TargetKind.PAGE)])


class TestNeedsBrowser:
    def test_rules(self) -> None:
        assert needs_browser(ExtractionTarget(source_url=GROUP_URL, kind=TargetKind.GROUP_FEED))
        assert needs_browser(ExtractionTarget(source_url=EVENTS_URL, kind=TargetKind.PAGE))
        assert not needs_browser(ExtractionTarget(source_url=EVENTS_URL, kind=TargetKind.PAGE, text="snapshot"))
        assert not needs_browser(ExtractionTarget(source_url=MISSING_PHOTO, kind=TargetKind.PHOTO))


# ---------------------------------------------------------------------------
# Reconciliation scenarios over raw results
# ---------------------------------------------------------------------------


class TestReconciliationScenarios:
    @pytest.mark.asyncio()
    async def test_completion_fills_only_missing_state(self) -> None:
        llm = make_mock_llm([[{"index": 0, "state": "OH"}]])
        reconciled = await ReconciliationEngine(make_engine(llm)).reconcile(
            [raw_result(0, show(venue="Joe's Bar", day="Monday", start_time="8:00 PM", state=None))]
        )
        (record,) = reconciled.shows
        assert record.state == "OH"
        assert (record.venue, record.start_time) == ("Joe's Bar", "8:00 PM")
        assert record.day is not None
        assert record.status == RecordStatus.GEO_FIXED

    @pytest.mark.asyncio()
    async def test_same_show_from_two_images_merges(self) -> None:
        joes = show(venue="Joe's Bar", day="Monday", start_time="8:00 PM")
        reconciled = await ReconciliationEngine().reconcile(
            [
                raw_result(0, joes, source_url="https://cdn.example/a.jpg"),
                raw_result(1, joes, source_url="https://cdn.example/b.jpg"),
            ]
        )
        (record,) = reconciled.shows
        assert record.source_urls == ["https://cdn.example/a.jpg", "https://cdn.example/b.jpg"]
        assert record.job_indices == [0, 1]
