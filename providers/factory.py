"""Factory for creating LLM providers from config. No hardcoded model names in callers."""

from __future__ import annotations

from core.interfaces import ILLMProvider
from providers.gemini_provider import GeminiProvider
from providers.openai_provider import DEFAULT_OLLAMA_BASE, OpenAIProvider
from utils.config import LLMConfig


def create_provider(
    provider: str,
    *,
    base_url: str | None = None,
    api_key: str = "",
    model: str = "",
    timeout_sec: int = 120,
) -> ILLMProvider:
    """
    Create an LLM provider by name: openai, ollama (OpenAI-compatible local server) or gemini.
    """
    name = (provider or "ollama").strip().lower()
    if name == "openai":
        return OpenAIProvider(
            base_url=base_url or None,
            api_key=api_key,
            model=model or "gpt-4o-mini",
            timeout_sec=timeout_sec,
        )
    if name == "ollama":
        return OpenAIProvider(
            base_url=base_url or DEFAULT_OLLAMA_BASE,
            api_key=api_key,
            model=model or "llama3.2",
            timeout_sec=timeout_sec,
        )
    if name == "gemini":
        return GeminiProvider(
            base_url=base_url or None,
            api_key=api_key,
            model=model or "gemini-1.5-flash",
            timeout_sec=timeout_sec,
        )
    raise ValueError(f"Unknown LLM provider: {provider}. Use openai, ollama, or gemini.")


def create_provider_from_config(config: LLMConfig) -> ILLMProvider:
    return create_provider(
        config.provider,
        base_url=config.base_url or None,
        api_key=config.api_key,
        model=config.model,
        timeout_sec=config.timeout_sec,
    )
