"""Google Gemini provider over the Generative Language REST API."""

import asyncio
import logging
from typing import List, Optional, Dict, Any
import httpx

from .base import BaseProvider, ProviderResponse, Message, SendOptions

logger = logging.getLogger(__name__)


class GeminiOverloadedError(Exception):
    """Transient overload reported by the Gemini API (HTTP 503)."""


class GeminiProvider(BaseProvider):
    """
    Provider for Google Gemini models.

    Gemini is the one gateway that retries: a 503 or an "overloaded"
    failure is retried once after a short backoff. Everything else is
    terminal on the first attempt.
    """

    provider_name = "gemini"
    display_name = "Google Gemini"
    default_model = "gemini-1.5-flash"

    base_url = "https://generativelanguage.googleapis.com/v1beta/models"
    max_attempts = 2
    retry_backoff = 2.0  # seconds, multiplied by the attempt number
    timeout = 30.0

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def build_payload(self, messages: List[Message], options: SendOptions) -> Dict[str, Any]:
        """Gemini uses contents -> parts -> text, and a separate system instruction."""
        system, turns = self.split_system(messages)
        contents = [
            {
                "role": "model" if msg.role == "assistant" else "user",
                "parts": [{"text": msg.content}],
            }
            for msg in turns
        ]
        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": options.temperature,
                "maxOutputTokens": options.max_tokens,
            },
        }
        if system:
            payload["system_instruction"] = {"parts": [{"text": system}]}
        return payload

    @staticmethod
    def _is_transient(error: Exception) -> bool:
        return isinstance(error, GeminiOverloadedError) or "overloaded" in str(error).lower()

    async def _send(self, messages: List[Message], options: SendOptions) -> ProviderResponse:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._request(messages, options)
            except Exception as e:
                last_error = e
                if self._is_transient(e) and attempt < self.max_attempts:
                    delay = attempt * self.retry_backoff
                    logger.info(
                        f"Gemini attempt {attempt} failed with overload, retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                    continue
                break

        raise last_error

    async def _request(self, messages: List[Message], options: SendOptions) -> ProviderResponse:
        url = f"{self.base_url}/{self.model}:generateContent"
        response = await self.client.post(
            url,
            params={"key": self.api_key},
            json=self.build_payload(messages, options),
        )

        if response.status_code == 503:
            raise GeminiOverloadedError("Gemini API error: 503 model overloaded")
        if response.status_code >= 400:
            raise RuntimeError(
                f"Gemini API error: {response.status_code} {response.text[:200]}"
            )

        data = response.json()
        candidates = data.get("candidates") or []
        content = ""
        if candidates:
            parts = candidates[0].get("content", {}).get("parts", [])
            content = "".join(p.get("text", "") for p in parts)

        usage = data.get("usageMetadata") or {}
        return ProviderResponse(
            descriptor=self.descriptor,
            content=content,
            tokens_used=usage.get("totalTokenCount"),
        )
