"""Google Gemini generateContent provider (REST, API key auth)."""

from __future__ import annotations

import logging
from typing import Any

import requests

from core.exceptions import CollaboratorError
from core.models import LLMResponse
from providers.base import BaseLLMProvider

logger = logging.getLogger(__name__)
DEFAULT_GEMINI_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider(BaseLLMProvider):
    """Gemini models via generativelanguage.googleapis.com. System messages become systemInstruction."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str = "",
        model: str = "gemini-1.5-flash",
        timeout_sec: int = 120,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(api_key=api_key, timeout_sec=timeout_sec)
        self._base_url = (base_url or DEFAULT_GEMINI_BASE).rstrip("/")
        self._model = model
        self._session = session or requests.Session()

    def complete(self, messages: list[dict[str, Any]], **kwargs: Any) -> LLMResponse:
        if not self._api_key:
            raise CollaboratorError("Gemini API key not configured")
        model = kwargs.get("model") or self._model
        system_parts = [{"text": m["content"]} for m in messages if m.get("role") == "system"]
        contents = [
            {
                "role": "model" if m.get("role") == "assistant" else "user",
                "parts": [{"text": m.get("content", "")}],
            }
            for m in messages
            if m.get("role") != "system"
        ]
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": kwargs.get("temperature", 0.1),
                "maxOutputTokens": kwargs.get("max_tokens", 4096),
            },
        }
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        url = f"{self._base_url}/models/{model}:generateContent"
        resp = self._session.post(
            url,
            params={"key": self._api_key},
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        candidates = data.get("candidates") or []
        if not candidates or not (candidates[0].get("content") or {}).get("parts"):
            raise CollaboratorError("Invalid Gemini API response format")
        parts = candidates[0]["content"]["parts"]
        usage = data.get("usageMetadata") or {}
        return LLMResponse(
            text="".join(p.get("text", "") for p in parts).strip(),
            model=model,
            finish_reason=candidates[0].get("finishReason") or "",
            usage={
                "input_tokens": int(usage.get("promptTokenCount") or 0),
                "output_tokens": int(usage.get("candidatesTokenCount") or 0),
            },
        )
