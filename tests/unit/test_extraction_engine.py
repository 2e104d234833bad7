"""Unit tests for StructuredExtractionEngine."""

from __future__ import annotations

import pytest

from fakes import make_engine, make_mock_llm, no_sleep
from karaoke_scout.models.extraction import ErrorKind
from karaoke_scout.models.targets import ExtractionJob, ExtractionTarget, PromptKind, TargetKind
from karaoke_scout.services.extraction_engine import StructuredExtractionEngine
from karaoke_scout.services.prompts import SYSTEM_PROMPTS
from karaoke_scout.utils.concurrency import RetryPolicy
from karaoke_scout.utils.errors import LLMError, RateLimitError, TransientNetworkError

_SHOW_REPLY = {
    "isKaraokeEvent": True,
    "shows": [{"venue": "Rusty Nail", "day": "Friday", "startTime": "9 PM", "confidence": 0.8}],
    "djs": [{"name": "DJ Sparkle"}],
}


# ======================================================================
# Shared helpers
# ======================================================================


def _text_job(index: int = 0, text: str = "Karaoke every Friday at the Rusty Nail, 9 PM") -> ExtractionJob:
    target = ExtractionTarget(
        source_url="https://bar.example.com/events", kind=TargetKind.PAGE, text=text
    )
    return ExtractionJob(target=target, index=index)


def _photo_job(index: int = 0, image: bytes = b"\x89PNG\r\n\x1a\nimg") -> ExtractionJob:
    target = ExtractionTarget(
        source_url="https://cdn.example.com/flyer.jpg",
        kind=TargetKind.PHOTO,
        image_bytes=image,
        page_url="https://www.facebook.com/groups/123/media",
    )
    return ExtractionJob(target=target, index=index)


# ======================================================================
# extract()
# ======================================================================


class TestExtract:
    @pytest.mark.asyncio()
    async def test_text_job_success(self) -> None:
        llm = make_mock_llm([_SHOW_REPLY])
        result = await make_engine(llm).extract(_text_job(index=4))

        assert result.success is True
        assert result.job_index == 4
        assert result.source_url == "https://bar.example.com/events"
        assert result.show.venue == "Rusty Nail"
        assert result.dj.name == "DJ Sparkle"
        assert result.model_confidence == 0.8
        kwargs = llm.complete.await_args.kwargs
        assert kwargs["system_prompt"] == SYSTEM_PROMPTS[PromptKind.SHOW_DETAIL]
        assert "Rusty Nail, 9 PM" in kwargs["user_prompt"]
        llm.vision_extract.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_photo_job_uses_vision(self) -> None:
        llm = make_mock_llm(vision_responses=["```json\n" + '{"shows": [{"venue": "Blue Moon"}]}' + "\n```"])
        result = await make_engine(llm).extract(_photo_job())

        assert result.success is True
        assert result.page_url == "https://www.facebook.com/groups/123/media"
        assert result.show.venue == "Blue Moon"
        image, prompt = llm.vision_extract.await_args.args
        assert image.startswith(b"\x89PNG")
        assert "facebook.com/groups/123" in prompt

    @pytest.mark.asyncio()
    async def test_chunk_content_overrides_target_text(self) -> None:
        llm = make_mock_llm([_SHOW_REPLY])
        job = _text_job().model_copy(update={"content": "second half of page", "chunk_index": 1})
        await make_engine(llm).extract(job)
        assert "second half of page" in llm.complete.await_args.kwargs["user_prompt"]

    @pytest.mark.asyncio()
    async def test_not_relevant_is_success_without_shows(self) -> None:
        llm = make_mock_llm([{"isKaraokeEvent": False, "reason": "bowling league"}])
        result = await make_engine(llm).extract(_text_job())
        assert result.success is True
        assert result.shows == []
        assert result.not_relevant_reason == "bowling league"

    @pytest.mark.asyncio()
    async def test_malformed_output(self) -> None:
        llm = make_mock_llm(["Sorry, I can't read that flyer."])
        result = await make_engine(llm).extract(_text_job(index=2))
        assert result.success is False
        assert result.job_index == 2
        assert result.error_kind == ErrorKind.MALFORMED_MODEL_OUTPUT

    @pytest.mark.asyncio()
    async def test_wrong_shape_is_validation_failure(self) -> None:
        llm = make_mock_llm([{"answer": 42}])
        result = await make_engine(llm).extract(_text_job())
        assert result.error_kind == ErrorKind.VALIDATION_FAILURE

    @pytest.mark.asyncio()
    async def test_job_without_content(self) -> None:
        llm = make_mock_llm()
        job = ExtractionJob(
            target=ExtractionTarget(source_url="https://x.example", kind=TargetKind.PAGE), index=0
        )
        result = await make_engine(llm).extract(job)
        assert result.error_kind == ErrorKind.VALIDATION_FAILURE
        llm.complete.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_provider_without_vision(self) -> None:
        llm = make_mock_llm(vision=False)
        result = await make_engine(llm).extract(_photo_job())
        assert result.error_kind == ErrorKind.PROVIDER_ERROR
        llm.vision_extract.assert_not_awaited()


# ======================================================================
# Quota retries
# ======================================================================


class TestQuotaRetries:
    @pytest.mark.asyncio()
    async def test_rate_limit_retried_then_succeeds(self) -> None:
        llm = make_mock_llm([RateLimitError("429"), RateLimitError("429"), _SHOW_REPLY])
        delays: list[float] = []

        async def _sleep(seconds: float) -> None:
            delays.append(seconds)

        engine = StructuredExtractionEngine(
            llm, retry_policy=RetryPolicy(max_attempts=4, base_delay=1.0, jitter=0.0), sleep=_sleep
        )
        result = await engine.extract(_text_job())

        assert result.success is True
        assert llm.complete.await_count == 3
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio()
    async def test_rate_limit_exhausted_is_quota_exceeded(self) -> None:
        llm = make_mock_llm([RateLimitError("429")] * 3)
        engine = StructuredExtractionEngine(llm, retry_policy=RetryPolicy(max_attempts=3), sleep=no_sleep)
        result = await engine.extract(_text_job())

        assert result.error_kind == ErrorKind.QUOTA_EXCEEDED
        assert llm.complete.await_count == 3

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (LLMError("400 bad request", "anthropic"), ErrorKind.PROVIDER_ERROR),
            (TransientNetworkError("connection reset"), ErrorKind.TRANSIENT_NETWORK),
        ],
    )
    async def test_other_errors_not_retried(self, error: Exception, kind: ErrorKind) -> None:
        llm = make_mock_llm([error, _SHOW_REPLY])
        result = await make_engine(llm).extract(_text_job())

        assert result.error_kind == kind
        assert llm.complete.await_count == 1


# ======================================================================
# run_prompt()
# ======================================================================


class TestRunPrompt:
    @pytest.mark.asyncio()
    async def test_returns_payload(self) -> None:
        llm = make_mock_llm([[{"index": 0, "city": "Columbus"}]])
        outcome = await make_engine(llm).run_prompt(PromptKind.GEO_COMPLETION, "fill these", max_tokens=2000)

        assert outcome.ok
        assert outcome.payload == [{"index": 0, "city": "Columbus"}]
        kwargs = llm.complete.await_args.kwargs
        assert kwargs["system_prompt"] == SYSTEM_PROMPTS[PromptKind.GEO_COMPLETION]
        assert kwargs["max_tokens"] == 2000
        assert kwargs["temperature"] == 0.1

    @pytest.mark.asyncio()
    async def test_failure_is_data(self) -> None:
        llm = make_mock_llm(["no json"])
        outcome = await make_engine(llm).run_prompt(PromptKind.GROUP_NAME, "header")
        assert not outcome.ok
        assert outcome.error_kind == ErrorKind.MALFORMED_MODEL_OUTPUT
        assert outcome.payload is None

    def test_provider_passthrough(self) -> None:
        engine = make_engine(make_mock_llm(name="anthropic", available=False))
        assert engine.provider_name == "anthropic"
        assert engine.is_available() is False
