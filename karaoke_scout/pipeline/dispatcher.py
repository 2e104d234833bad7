"""Bounded, order-preserving worker pool for extraction jobs.

# ─── HOW DISPATCH WORKS ───────────────────────────────────────────────
#
#   jobs  [0 1 2 3 4 5 6]        concurrency K = 3
#          └─┬─┘ └─┬─┘ └┘
#         batch 1  batch 2  batch 3      (sequential)
#
# Inside a batch every job runs concurrently in its own task.  The batch
# is complete only when *every* job has settled -- succeeded, failed or
# timed out -- and only then does the fixed inter-batch delay start.
#
# Each job is wrapped in asyncio.wait_for(job_timeout): on expiry the
# task is cancelled and a TIMEOUT result is synthesized for its index.
# Any exception escaping the worker becomes an UNEXPECTED result for that
# index only.  The output list is sorted by job index, so result[i]
# belongs to job i no matter which finished first.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

import structlog

from karaoke_scout.models.extraction import ErrorKind, RawExtractionResult
from karaoke_scout.models.targets import ExtractionJob
from karaoke_scout.utils.errors import KaraokeScoutError, error_kind_for
from karaoke_scout.utils.logging import get_logger

JobWorker = Callable[[ExtractionJob], Awaitable[RawExtractionResult]]
BatchCallback = Callable[[int, int], None]


class TaskDispatcher:
    """Run extraction jobs in sequential batches of at most ``concurrency``.

    Parameters
    ----------
    concurrency:
        Batch size K.  Kept small to respect provider rate limits.
    job_timeout:
        Seconds each job may run before it is cancelled.
    inter_batch_delay:
        Seconds to pause between batches to ease provider rate limits.
    sleep:
        Injected sleep coroutine for the inter-batch delay.
    """

    def __init__(
        self,
        concurrency: int = 3,
        job_timeout: float = 30.0,
        inter_batch_delay: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if job_timeout <= 0:
            raise ValueError("job_timeout must be > 0")
        self._concurrency = concurrency
        self._job_timeout = job_timeout
        self._inter_batch_delay = inter_batch_delay
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def concurrency(self) -> int:
        return self._concurrency

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        jobs: list[ExtractionJob],
        worker: JobWorker,
        on_batch_complete: BatchCallback | None = None,
    ) -> list[RawExtractionResult]:
        """Execute *jobs* with *worker* and return one result per job.

        Parameters
        ----------
        jobs:
            Jobs to run.  Indices need not be contiguous but must be unique.
        worker:
            Coroutine function producing the result for one job.
        on_batch_complete:
            Optional ``(completed, total)`` callback after each batch.

        Returns
        -------
        list[RawExtractionResult]
            Sorted by ``job_index``; ``len(result) == len(jobs)``.
        """
        if len({job.index for job in jobs}) != len(jobs):
            raise ValueError("job indices must be unique")

        total = len(jobs)
        results: list[RawExtractionResult] = []
        started = time.monotonic()
        batches = [
            jobs[i : i + self._concurrency] for i in range(0, total, self._concurrency)
        ]

        for number, batch in enumerate(batches, start=1):
            self._logger.debug(
                "dispatch_batch_start",
                batch=number,
                batches=len(batches),
                indices=[job.index for job in batch],
            )
            settled = await asyncio.gather(*(self._run_one(job, worker) for job in batch))
            results.extend(settled)

            if on_batch_complete is not None:
                on_batch_complete(len(results), total)
            if number < len(batches) and self._inter_batch_delay > 0:
                await self._sleep(self._inter_batch_delay)

        results.sort(key=lambda r: r.job_index)
        failed = sum(1 for r in results if not r.success)
        self._logger.info(
            "dispatch_complete",
            jobs=total,
            failed=failed,
            batches=len(batches),
            elapsed_s=round(time.monotonic() - started, 2),
        )
        return results

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _run_one(self, job: ExtractionJob, worker: JobWorker) -> RawExtractionResult:
        """Run one job under the pool timeout; never raises (except cancellation)."""
        try:
            result = await asyncio.wait_for(worker(job), timeout=self._job_timeout)
        except asyncio.TimeoutError:
            self._logger.warning(
                "job_timeout", job_index=job.index, timeout_s=self._job_timeout
            )
            return self._synthesize(
                job, ErrorKind.TIMEOUT, f"Job exceeded {self._job_timeout:g}s timeout"
            )
        except KaraokeScoutError as exc:
            return self._synthesize(job, error_kind_for(exc), str(exc))
        except Exception as exc:
            self._logger.error(
                "job_crashed",
                job_index=job.index,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return self._synthesize(job, ErrorKind.UNEXPECTED, f"{type(exc).__name__}: {exc}")

        if result.job_index != job.index:
            # Provenance is anchored to the job, not to whatever the worker reported.
            result = result.model_copy(update={"job_index": job.index})
        return result

    @staticmethod
    def _synthesize(job: ExtractionJob, kind: ErrorKind, message: str) -> RawExtractionResult:
        return RawExtractionResult.failure(
            job_index=job.index,
            source_url=job.target.source_url,
            page_url=job.target.page_url,
            error_kind=kind,
            error_message=message,
        )
