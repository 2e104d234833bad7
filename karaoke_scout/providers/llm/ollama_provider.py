"""Ollama LLM provider adapter.

Talks to a local Ollama server through its OpenAI-compatible ``/v1`` API
using the ``openai`` client.  Lets karaoke-scout run fully offline with
``llama3.1`` for text and ``llava`` for vision; accuracy on photographed
flyers is noticeably lower than the hosted models.
"""

from __future__ import annotations

import base64
from typing import NoReturn

import httpx
import openai
import structlog

from karaoke_scout.config.settings import Settings
from karaoke_scout.interfaces.llm_provider import ILLMProvider
from karaoke_scout.utils.errors import LLMError, RateLimitError, TransientNetworkError
from karaoke_scout.utils.image import detect_media_type

logger = structlog.get_logger(logger_name=__name__)


class OllamaLLMProvider(ILLMProvider):
    """LLM provider backed by a local Ollama server."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url.rstrip('/')}/v1",
            # The SDK requires a non-empty key; Ollama ignores it.
            api_key="ollama",
            timeout=openai.Timeout(max(settings.llm_timeout_s, 60.0), connect=5.0),
            max_retries=0,
        )
        self._text_model = "llama3.1"
        self._vision_model = "llava"

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
                message="Ollama returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info("ollama_completion", model=self._text_model)
        return content

    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
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
                max_tokens=4000,
            )
        except openai.APIError as exc:
            self._translate_error(exc, "vision")

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMError(
                message="Ollama vision returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info("ollama_vision_extract", model=self._vision_model)
        return content

    def supports_vision(self) -> bool:
        return True

    def is_available(self) -> bool:
        return bool(self._base_url)

    async def validate_credentials(self) -> bool:
        """Check that the Ollama server answers on ``/api/tags``."""
        if not self.is_available():
            return False
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self._base_url.rstrip('/')}/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False

    def get_provider_name(self) -> str:
        return "ollama"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _translate_error(self, exc: openai.APIError, operation: str) -> NoReturn:
        name = self.get_provider_name()
        if isinstance(exc, openai.RateLimitError):
            raise RateLimitError(f"Ollama {operation} busy: {exc}", name) from exc
        if isinstance(exc, openai.APIConnectionError):
            raise TransientNetworkError(f"Ollama {operation} unreachable: {exc}", name) from exc
        raise LLMError(f"Ollama {operation} API error: {exc}", name) from exc
