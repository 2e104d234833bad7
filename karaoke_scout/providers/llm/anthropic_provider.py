"""Anthropic LLM provider adapter.

Wraps the ``anthropic`` async client to implement :class:`ILLMProvider`.

Differences from the OpenAI adapter:
    - System prompt is a separate parameter, not a message
    - Vision uses an ``image`` content block with a base64 source
    - Response content is a list of blocks; text blocks are joined
"""

from __future__ import annotations

import base64
from typing import NoReturn

import anthropic
import structlog

from karaoke_scout.config.settings import Settings
from karaoke_scout.interfaces.llm_provider import ILLMProvider
from karaoke_scout.utils.errors import LLMError, RateLimitError, TransientNetworkError
from karaoke_scout.utils.image import detect_media_type

logger = structlog.get_logger(logger_name=__name__)

# HTTP 529 "overloaded" behaves like a quota condition: back off and retry.
_OVERLOADED_STATUS = 529


class AnthropicLLMProvider(ILLMProvider):
    """LLM provider backed by the Anthropic Claude API (text + vision)."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.anthropic_api_key
        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key,
            timeout=settings.llm_timeout_s,
            max_retries=0,
        )
        self._model = settings.anthropic_model

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
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
            )
        except anthropic.APIError as exc:
            self._translate_error(exc, "completion")

        result = self._join_text(response, "completion")
        logger.info(
            "anthropic_completion",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return result

    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
        """Analyse an image; the image block goes before the text prompt."""
        b64 = base64.b64encode(image_bytes).decode("utf-8")
        media_type = detect_media_type(image_bytes)
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=4000,
                temperature=0.1,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": media_type,
                                    "data": b64,
                                },
                            },
                            {"type": "text", "text": prompt},
                        ],
                    }
                ],
            )
        except anthropic.APIError as exc:
            self._translate_error(exc, "vision")

        result = self._join_text(response, "vision")
        logger.info(
            "anthropic_vision_extract",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return result

    def supports_vision(self) -> bool:
        return True

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """Try a minimal completion to verify the API key works."""
        if not self.is_available():
            return False
        try:
            await self._client.messages.create(
                model=self._model,
                max_tokens=10,
                messages=[{"role": "user", "content": "hi"}],
            )
            return True
        except anthropic.APIError:
            return False

    def get_provider_name(self) -> str:
        return "anthropic"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _join_text(self, response: anthropic.types.Message, operation: str) -> str:
        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise LLMError(
                message=f"Anthropic {operation} returned no text content",
                provider_name=self.get_provider_name(),
            )
        return "\n".join(text_blocks)

    def _translate_error(self, exc: anthropic.APIError, operation: str) -> NoReturn:
        name = self.get_provider_name()
        if isinstance(exc, anthropic.RateLimitError) or (
            isinstance(exc, anthropic.APIStatusError) and exc.status_code == _OVERLOADED_STATUS
        ):
            raise RateLimitError(
                message=f"Anthropic {operation} rate limited: {exc}",
                provider_name=name,
            ) from exc
        if isinstance(exc, anthropic.APIConnectionError):
            raise TransientNetworkError(
                message=f"Anthropic {operation} connection failed: {exc}",
                provider_name=name,
            ) from exc
        raise LLMError(
            message=f"Anthropic {operation} API error: {exc}",
            provider_name=name,
        ) from exc
