"""Structured extraction engine: one model call under a schema contract.

The engine is the only component that talks to the LLM provider.  Every
call goes through the same three steps:

1. **Call** the provider (vision for image payloads, text otherwise),
   retrying *only* quota errors under the configured :class:`RetryPolicy`.
2. **Recover** the JSON payload from free-form text
   (:func:`~karaoke_scout.utils.json_extract.extract_json_payload`).
3. **Decode** it into typed records (``services/payload_decoder.py``).

Failures are classified into :class:`ErrorKind` and returned as data --
:meth:`StructuredExtractionEngine.extract` never raises for a job-level
problem, so the dispatcher can always place a result at the job's index.
``asyncio.CancelledError`` is the one exception that still propagates; the
dispatcher uses it to enforce per-job timeouts.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog

from karaoke_scout.interfaces.llm_provider import ILLMProvider
from karaoke_scout.models.extraction import ErrorKind, RawExtractionResult
from karaoke_scout.models.targets import ExtractionJob, PromptKind
from karaoke_scout.services import prompts
from karaoke_scout.services.payload_decoder import decode_show_detail
from karaoke_scout.utils.concurrency import RetryPolicy, retry_on_rate_limit
from karaoke_scout.utils.errors import (
    KaraokeScoutError,
    LLMError,
    ValidationFailureError,
    error_kind_for,
)
from karaoke_scout.utils.json_extract import extract_json_payload
from karaoke_scout.utils.logging import get_logger


@dataclass(frozen=True)
class ModelCallOutcome:
    """Parsed JSON from one model call, or the classified reason it failed."""

    payload: Any = None
    error_kind: ErrorKind | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None


class StructuredExtractionEngine:
    """Wraps a single generative-model call with tolerant parsing.

    Parameters
    ----------
    llm_provider:
        The model backend.
    retry_policy:
        Backoff applied to :class:`RateLimitError` only.
    sleep:
        Injected sleep used between quota retries (tests pass a no-op).
    """

    def __init__(
        self,
        llm_provider: ILLMProvider,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._llm = llm_provider
        self._policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def provider_name(self) -> str:
        return self._llm.get_provider_name()

    def is_available(self) -> bool:
        return self._llm.is_available()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract(self, job: ExtractionJob) -> RawExtractionResult:
        """Run a SHOW_DETAIL extraction for *job*.

        Returns
        -------
        RawExtractionResult
            Always one result carrying ``job.index``; ``success=False`` with
            an ``error_kind`` when anything went wrong.
        """
        target = job.target
        started = time.monotonic()

        text = job.text_payload
        if target.image_bytes is not None:
            outcome = await self.run_prompt(
                PromptKind.SHOW_DETAIL,
                user_prompt=prompts.show_detail_image_prompt(target.page_url or target.source_url),
                image_bytes=target.image_bytes,
            )
        elif text:
            outcome = await self.run_prompt(
                PromptKind.SHOW_DETAIL,
                user_prompt=prompts.show_detail_text_prompt(
                    text, target.source_url, job.chunk_index
                ),
            )
        else:
            return self._failure(job, ErrorKind.VALIDATION_FAILURE, "Job has no content payload")

        if not outcome.ok:
            return self._failure(job, outcome.error_kind, outcome.error_message or "")

        try:
            decoded = decode_show_detail(outcome.payload)
        except ValidationFailureError as exc:
            self._logger.warning(
                "show_payload_rejected", job_index=job.index, error=exc.message
            )
            return self._failure(job, ErrorKind.VALIDATION_FAILURE, exc.message)

        if decoded.dropped:
            self._logger.info(
                "show_fields_dropped", job_index=job.index, fields=decoded.dropped[:10]
            )
        self._logger.info(
            "show_extraction_complete",
            job_index=job.index,
            shows=len(decoded.shows),
            djs=len(decoded.djs),
            vendors=len(decoded.vendors),
            relevant=decoded.not_relevant_reason is None,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        return RawExtractionResult(
            job_index=job.index,
            success=True,
            source_url=target.source_url,
            page_url=target.page_url,
            shows=decoded.shows,
            djs=decoded.djs,
            vendors=decoded.vendors,
            model_confidence=decoded.model_confidence,
            dropped_fields=decoded.dropped,
            not_relevant_reason=decoded.not_relevant_reason,
        )

    async def run_prompt(
        self,
        prompt_kind: PromptKind,
        user_prompt: str,
        image_bytes: bytes | None = None,
        max_tokens: int = 4000,
    ) -> ModelCallOutcome:
        """Call the model for *prompt_kind* and recover its JSON payload.

        Never raises for provider or parsing problems; see
        :class:`ModelCallOutcome`.
        """
        system_prompt = prompts.SYSTEM_PROMPTS[prompt_kind]

        async def _call() -> str:
            if image_bytes is not None:
                if not self._llm.supports_vision():
                    raise LLMError(
                        "Provider has no vision model configured",
                        self._llm.get_provider_name(),
                    )
                return await self._llm.vision_extract(
                    image_bytes, f"{system_prompt}\n\n{user_prompt}"
                )
            return await self._llm.complete(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                temperature=0.1,
                max_tokens=max_tokens,
            )

        try:
            raw = await retry_on_rate_limit(
                _call, self._policy, operation=prompt_kind.value, sleep=self._sleep
            )
            payload = extract_json_payload(raw, self._llm.get_provider_name())
        except KaraokeScoutError as exc:
            kind = error_kind_for(exc)
            self._logger.warning(
                "model_call_failed",
                prompt_kind=prompt_kind.value,
                error_kind=kind.value,
                error=str(exc),
            )
            return ModelCallOutcome(error_kind=kind, error_message=str(exc))
        return ModelCallOutcome(payload=payload)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _failure(job: ExtractionJob, kind: ErrorKind | None, message: str) -> RawExtractionResult:
        return RawExtractionResult.failure(
            job_index=job.index,
            source_url=job.target.source_url,
            page_url=job.target.page_url,
            error_kind=kind or ErrorKind.UNEXPECTED,
            error_message=message,
        )
