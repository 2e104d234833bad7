"""Central orchestrator for one extraction run.

Stages, in order:

1. **Scrape** -- page and group-feed targets go through the browser
   driver, at most ``scrape_concurrency`` at a time.  A target the driver
   cannot scrape becomes a :class:`TargetFailure`; the run continues.
2. **Jobs** -- concrete targets become dispatcher jobs (oversized text is
   chunked).
3. **Dispatch** -- the task dispatcher runs the jobs against the
   extraction engine; photo URLs are downloaded inside their job so the
   download counts against the job timeout.
4. **Reconcile** -- raw results become show, DJ and vendor records.

Only batch-setup failures (no model, browser will not launch) raise
:class:`PipelineError`.  Everything else is reported in the returned
:class:`ExtractionRunResult` and its :class:`RunSummary`.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from karaoke_scout.interfaces.browser_provider import IBrowserProvider
from karaoke_scout.models.browser import DriverState, ScrapeFailureKind, ScrapeOutcome
from karaoke_scout.models.extraction import RawExtractionResult
from karaoke_scout.models.records import (
    ExtractionRunResult,
    RecordStatus,
    RunSummary,
    ShowRecord,
    TargetFailure,
)
from karaoke_scout.models.targets import ExtractionJob, ExtractionTarget, TargetKind
from karaoke_scout.pipeline.dispatcher import TaskDispatcher
from karaoke_scout.pipeline.progress_tracker import ProgressTracker
from karaoke_scout.services.content_chunker import build_jobs
from karaoke_scout.services.extraction_engine import StructuredExtractionEngine
from karaoke_scout.services.image_fetcher import ImageFetcher
from karaoke_scout.services.reconciliation.engine import ReconciliationEngine
from karaoke_scout.utils.concurrency import throttled_gather
from karaoke_scout.utils.errors import BrowserAutomationError, PipelineError
from karaoke_scout.utils.logging import get_logger

if TYPE_CHECKING:
    # annotation only: driver -> pipeline import cycle
    from karaoke_scout.services.browser.driver import BrowserAutomationDriver

# (floor, span) of the run percentage given to each stage.
_SCRAPE_BAND = (0.0, 30.0)
_DISPATCH_BAND = (30.0, 55.0)
_RECONCILE_FLOOR = 85.0


def needs_browser(target: ExtractionTarget) -> bool:
    """Group feeds and pages without a text snapshot must be scraped first."""
    if target.kind == TargetKind.GROUP_FEED:
        return True
    return target.kind == TargetKind.PAGE and target.text is None


class ShowExtractionPipeline:
    """Runs targets through scrape, dispatch and reconciliation.

    All collaborators are injected; the pipeline never builds providers.
    ``driver`` and ``browser`` may be ``None`` when every target already
    carries its content (photos, text snapshots).
    """

    def __init__(
        self,
        engine: StructuredExtractionEngine,
        dispatcher: TaskDispatcher,
        reconciler: ReconciliationEngine,
        progress_tracker: ProgressTracker,
        driver: BrowserAutomationDriver | None = None,
        browser: IBrowserProvider | None = None,
        image_fetcher: ImageFetcher | None = None,
        *,
        scrape_concurrency: int = 2,
        chunk_chars: int = 12000,
    ) -> None:
        self._engine = engine
        self._dispatcher = dispatcher
        self._reconciler = reconciler
        self._progress_tracker = progress_tracker
        self._driver = driver
        self._browser = browser
        self._image_fetcher = image_fetcher
        self._scrape_concurrency = max(1, scrape_concurrency)
        self._chunk_chars = chunk_chars
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def run(
        self,
        targets: list[ExtractionTarget],
        run_id: str | None = None,
    ) -> ExtractionRunResult:
        """Execute one run over *targets*.

        Raises
        ------
        PipelineError
            If no model provider is available, browser targets are given
            without a driver, photo URLs without a fetcher, or the browser
            cannot be launched.
        """
        run_id = run_id or uuid4().hex
        started = time.monotonic()
        self._check_setup(targets)
        self._logger.info("run_start", run_id=run_id, targets=len(targets))
        self._progress_tracker.status(run_id, f"Starting run with {len(targets)} target(s)", stage="start")

        # -- Scrape --
        browse = [t for t in targets if needs_browser(t)]
        outcomes = await self._scrape(browse, run_id) if browse else []
        by_source = {outcome.source_url: outcome for outcome in outcomes}

        concrete: list[ExtractionTarget] = []
        failures: list[TargetFailure] = []
        scrape_metadata: dict[str, dict] = {}
        for target in targets:
            if not needs_browser(target):
                concrete.append(target)
                continue
            outcome = by_source[target.source_url]
            if outcome.success:
                concrete.extend(outcome.targets)
                scrape_metadata[target.source_url] = outcome.metadata.model_dump(mode="json")
            else:
                failures.append(
                    TargetFailure(
                        source_url=target.source_url,
                        failure=outcome.failure or ScrapeFailureKind.NAVIGATION_ERROR,
                        message=outcome.message or "scrape failed",
                    )
                )

        # -- Dispatch --
        jobs = build_jobs(concrete, self._chunk_chars)
        self._progress_tracker.status(run_id, f"Extracting from {len(jobs)} job(s)", stage="extract")
        floor, span = _DISPATCH_BAND
        results = await self._dispatcher.dispatch(
            jobs,
            self._work,
            on_batch_complete=lambda done, total: self._progress_tracker.percent(
                run_id, done, total, floor=floor, span=span
            ),
        )

        # -- Reconcile --
        self._progress_tracker.percent(run_id, 0, 1, floor=_RECONCILE_FLOOR, span=0.0)
        self._progress_tracker.status(run_id, "Reconciling records", stage="reconcile")
        reconciled = await self._reconciler.reconcile(results)

        summary = build_summary(
            sources=len(targets),
            failures=failures,
            results=results,
            shows=reconciled.shows,
        )
        run = ExtractionRunResult(
            run_id=run_id,
            shows=reconciled.shows,
            djs=reconciled.djs,
            vendors=reconciled.vendors,
            target_failures=failures,
            metadata={
                "llm_provider": self._engine.provider_name,
                "scrapes": scrape_metadata,
                "elapsed_s": round(time.monotonic() - started, 2),
            },
            summary=summary,
        )
        self._progress_tracker.percent(run_id, 1, 1)
        self._progress_tracker.status(
            run_id, f"Done: {summary.shows} show(s) from {summary.jobs} job(s)", stage="complete"
        )
        self._logger.info(
            "run_complete",
            run_id=run_id,
            shows=summary.shows,
            jobs=summary.jobs,
            failed=summary.failed,
            sources_failed=summary.sources_failed,
            elapsed_s=run.metadata["elapsed_s"],
        )
        return run

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _check_setup(self, targets: list[ExtractionTarget]) -> None:
        if not self._engine.is_available():
            raise PipelineError(
                message="No model provider is available", provider_name=self._engine.provider_name
            )
        if any(needs_browser(t) for t in targets) and (self._driver is None or self._browser is None):
            raise PipelineError(message="Page or group targets given but no browser is configured")
        photo_urls = any(
            t.kind == TargetKind.PHOTO and not t.has_payload for t in targets
        ) or any(t.kind == TargetKind.GROUP_FEED for t in targets)
        if photo_urls and self._image_fetcher is None:
            raise PipelineError(message="Photo URL targets given but no image fetcher is configured")

    async def _scrape(self, targets: list[ExtractionTarget], run_id: str) -> list[ScrapeOutcome]:
        try:
            await self._browser.start()
        except BrowserAutomationError as exc:
            raise PipelineError(
                message=f"Browser could not be started: {exc.message}",
                provider_name=self._browser.get_provider_name(),
            ) from exc

        self._progress_tracker.status(run_id, f"Scraping {len(targets)} source(s)", stage="scrape")
        done = 0
        floor, span = _SCRAPE_BAND

        async def _one(target: ExtractionTarget) -> ScrapeOutcome:
            nonlocal done
            outcome = await self._driver.scrape(target, run_id=run_id)
            done += 1
            self._progress_tracker.percent(run_id, done, len(targets), floor=floor, span=span)
            return outcome

        try:
            settled = await throttled_gather(
                [_one(t) for t in targets], asyncio.Semaphore(self._scrape_concurrency)
            )
        finally:
            await self._browser.close()

        outcomes: list[ScrapeOutcome] = []
        for target, item in zip(targets, settled):
            if isinstance(item, asyncio.CancelledError):
                raise item
            if isinstance(item, BaseException):
                self._logger.error(
                    "scrape_crashed",
                    source_url=target.source_url,
                    error=str(item),
                    error_type=type(item).__name__,
                )
                item = ScrapeOutcome.failed(
                    target.source_url,
                    ScrapeFailureKind.NAVIGATION_ERROR,
                    f"{type(item).__name__}: {item}",
                    final_state=DriverState.NOT_LOADED,
                )
            outcomes.append(item)
        return outcomes

    async def _work(self, job: ExtractionJob) -> RawExtractionResult:
        target = job.target
        if target.kind == TargetKind.PHOTO and not target.has_payload:
            image = await self._image_fetcher.fetch(target.source_url)
            job = job.model_copy(update={"target": target.model_copy(update={"image_bytes": image})})
        return await self._engine.extract(job)


def build_summary(
    sources: int,
    failures: list[TargetFailure],
    results: list[RawExtractionResult],
    shows: list[ShowRecord],
) -> RunSummary:
    """Operator-facing counts for a finished run."""
    statuses = Counter(show.status for show in shows)
    kinds = Counter(r.error_kind for r in results if not r.success and r.error_kind is not None)
    return RunSummary(
        sources=sources,
        sources_failed=len(failures),
        jobs=len(results),
        succeeded=sum(1 for r in results if r.success),
        failed=sum(1 for r in results if not r.success),
        shows=len(shows),
        validated=statuses[RecordStatus.VALIDATED],
        conflicted=statuses[RecordStatus.CONFLICT],
        skipped=statuses[RecordStatus.SKIPPED],
        geo_fixed=statuses[RecordStatus.GEO_FIXED],
        time_fixed=statuses[RecordStatus.TIME_FIXED],
        errors=statuses[RecordStatus.ERROR],
        error_kinds=dict(kinds),
    )
