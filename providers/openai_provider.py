"""OpenAI and OpenAI-compatible (Ollama, Azure, ...) chat/completions provider."""

from __future__ import annotations

import logging
from typing import Any

import requests

from core.models import LLMResponse
from providers.base import BaseLLMProvider

logger = logging.getLogger(__name__)
DEFAULT_OPENAI_BASE = "https://api.openai.com/v1"
DEFAULT_OLLAMA_BASE = "http://localhost:11434/v1"


class OpenAIProvider(BaseLLMProvider):
    """OpenAI API and any endpoint speaking the same /chat/completions contract."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        timeout_sec: int = 120,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(api_key=api_key, timeout_sec=timeout_sec)
        self._base_url = (base_url or DEFAULT_OPENAI_BASE).rstrip("/")
        self._model = model
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        h: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            h["Authorization"] = f"Bearer {self._api_key}"
        return h

    def complete(self, messages: list[dict[str, Any]], **kwargs: Any) -> LLMResponse:
        url = f"{self._base_url}/chat/completions"
        model = kwargs.get("model") or self._model
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": kwargs.get("max_tokens", 4096),
            "stream": False,
        }
        if kwargs.get("temperature") is not None:
            payload["temperature"] = kwargs["temperature"]
        if kwargs.get("response_format") is not None:
            payload["response_format"] = kwargs["response_format"]
        resp = self._session.post(url, json=payload, headers=self._headers(), timeout=self._timeout)
        resp.raise_for_status()
        data = resp.json()
        choice = (data.get("choices") or [{}])[0]
        usage = data.get("usage") or {}
        return LLMResponse(
            text=((choice.get("message") or {}).get("content") or "").strip(),
            model=data.get("model") or model,
            finish_reason=choice.get("finish_reason") or "",
            usage={
                "input_tokens": int(usage.get("prompt_tokens") or 0),
                "output_tokens": int(usage.get("completion_tokens") or 0),
            },
        )
