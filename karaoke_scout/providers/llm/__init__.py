"""LLM provider adapters.

Three concrete implementations of ILLMProvider
(karaoke_scout/interfaces/llm_provider.py):
    - AnthropicLLMProvider - Claude (vision + text), preferred when configured
    - OpenAILLMProvider    - gpt-4o / gpt-4o-mini, or any OpenAI-compatible API
    - OllamaLLMProvider    - local models via an Ollama server
"""

from karaoke_scout.providers.llm.anthropic_provider import AnthropicLLMProvider
from karaoke_scout.providers.llm.ollama_provider import OllamaLLMProvider
from karaoke_scout.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "OllamaLLMProvider", "OpenAILLMProvider"]
