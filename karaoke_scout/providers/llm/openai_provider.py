"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
When ``openai_base_url`` is configured (TogetherAI, Fireworks, Groq ...)
the client points at that URL instead of the default OpenAI endpoint.

SDK exceptions are translated so the extraction engine can tell a quota
problem (retry with backoff) from everything else (fail the job now).
"""

from __future__ import annotations

import base64
from typing import NoReturn

import openai
import structlog

from karaoke_scout.config.settings import Settings
from karaoke_scout.interfaces.llm_provider import ILLMProvider
from karaoke_scout.utils.errors import LLMError, RateLimitError, TransientNetworkError
from karaoke_scout.utils.image import detect_media_type

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible API.

    Uses ``gpt-4o`` for vision and ``gpt-4o-mini`` for text by default.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(settings.llm_timeout_s, connect=5.0),
            # Quota retries are owned by the extraction engine's RetryPolicy.
            "max_retries": 0,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._text_model = settings.openai_text_model or "gpt-4o-mini"
        self._vision_model = settings.openai_vision_model or "gpt-4o"
        self._has_vision = bool(settings.openai_vision_model) or not settings.openai_base_url
        self._provider_label = (
            "openai-compatible" if settings.openai_base_url else "openai"
        )

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion via the chat completions API."""
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIError as exc:
            self._translate_error(exc, "completion")

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_completion",
            model=self._text_model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content

    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
        """Analyse an image with the configured vision model."""
        if not self._has_vision:
            raise LLMError(
                message="Vision not supported by this provider configuration",
                provider_name=self.get_provider_name(),
            )
        b64 = base64.b64encode(image_bytes).decode("utf-8")
        media_type = detect_media_type(image_bytes)
        try:
            response = await self._client.chat.completions.create(
                model=self._vision_model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:{media_type};base64,{b64}"},
                            },
                        ],
                    }
                ],
                temperature=0.1,
                max_tokens=4000,
            )
        except openai.APIError as exc:
            self._translate_error(exc, "vision")

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMError(
                message=f"{self._provider_label} vision returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_vision_extract",
            model=self._vision_model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content

    def supports_vision(self) -> bool:
        return self._has_vision

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """List models to verify the API key without inference cost."""
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    def get_provider_name(self) -> str:
        return self._provider_label

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _translate_error(self, exc: openai.APIError, operation: str) -> NoReturn:
        name = self.get_provider_name()
        if isinstance(exc, openai.RateLimitError):
            raise RateLimitError(
                message=f"{self._provider_label} {operation} rate limited: {exc}",
                provider_name=name,
            ) from exc
        if isinstance(exc, openai.APIConnectionError):
            # APITimeoutError is a subclass of APIConnectionError.
            raise TransientNetworkError(
                message=f"{self._provider_label} {operation} connection failed: {exc}",
                provider_name=name,
            ) from exc
        raise LLMError(
            message=f"{self._provider_label} {operation} API error: {exc}",
            provider_name=name,
        ) from exc
