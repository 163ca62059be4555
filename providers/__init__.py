"""LLM providers: abstract base and concrete implementations."""

from providers.base import BaseLLMProvider
from providers.openai_provider import OpenAIProvider
from providers.gemini_provider import GeminiProvider
from providers.factory import create_provider, create_provider_from_config

__all__ = [
    "BaseLLMProvider",
    "OpenAIProvider",
    "GeminiProvider",
    "create_provider",
    "create_provider_from_config",
]
