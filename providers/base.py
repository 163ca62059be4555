"""
Abstract base for all LLM providers.
Services depend only on ILLMProvider; no concrete provider imports in services.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from core.interfaces import ILLMProvider
from core.models import LLMResponse


class BaseLLMProvider(ILLMProvider, ABC):
    """Abstract LLM provider. Implement complete(); generate() and chat() derive from it."""

    def __init__(self, api_key: str = "", timeout_sec: int = 120) -> None:
        self._api_key = api_key or ""
        self._timeout = timeout_sec

    @abstractmethod
    def complete(self, messages: list[dict[str, Any]], **kwargs: Any) -> LLMResponse:
        """One request for a list of {role, content} messages. kwargs: model, max_tokens, temperature."""
        ...

    def generate(self, prompt: str, **kwargs: Any) -> LLMResponse:
        messages: list[dict[str, Any]] = []
        system = kwargs.pop("system", None)
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return self.complete(messages, **kwargs)

    def chat(self, messages: list[dict[str, Any]], **kwargs: Any) -> str:
        return self.complete(messages, **kwargs).text
