"""Abstract base class for LLM service providers.

Defines the contract for the generative model behind the structured
extraction engine: plain text completion plus (optionally) vision.
Implementations wrap Anthropic, OpenAI (or any OpenAI-compatible API) and
a local Ollama server.  The rest of the code never imports an SDK.

Error contract
--------------
Implementations translate SDK exceptions into the karaoke-scout hierarchy,
because the extraction engine decides whether to retry purely by type:

* quota / HTTP 429         -> :class:`~karaoke_scout.utils.errors.RateLimitError`
* connection / timeout     -> :class:`~karaoke_scout.utils.errors.TransientNetworkError`
* everything else          -> :class:`~karaoke_scout.utils.errors.LLMError`
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: AnthropicLLMProvider, OpenAILLMProvider, OllamaLLMProvider
# Located in: karaoke_scout/providers/llm/
class ILLMProvider(ABC):
    """Contract for LLM services used by the extraction engine."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The prompt containing the actual request and content payload.
        temperature:
            Sampling temperature.  Extraction uses a low value.
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's raw text response.

        Raises
        ------
        RateLimitError
            When the provider reports a quota / rate-limit condition.
        TransientNetworkError
            On connection failures and client-side timeouts.
        LLMError
            For any other API failure or an empty response.
        """

    @abstractmethod
    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
        """Analyse an image using the model's vision capability.

        Parameters
        ----------
        image_bytes:
            Raw bytes of the image (PNG, JPEG or WEBP).
        prompt:
            Instruction describing what to extract from the image.

        Returns
        -------
        str
            The model's raw text response.

        Raises
        ------
        LLMError
            If the provider configuration has no vision model, or the
            call fails.  Quota and network failures raise the same
            specialised errors as :meth:`complete`.
        """

    @abstractmethod
    def supports_vision(self) -> bool:
        """Return ``True`` if this provider can process image inputs."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"anthropic"`` or ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (no network call)."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Perform a lightweight API call to confirm credentials are valid."""
