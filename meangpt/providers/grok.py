"""xAI Grok provider (OpenAI-compatible chat completions over HTTP)."""

import logging
from typing import Optional
import httpx

from .base import BaseProvider, ProviderResponse, SendOptions

logger = logging.getLogger(__name__)


class GrokProvider(BaseProvider):
    """Provider for xAI Grok models."""

    provider_name = "grok"
    display_name = "xAI Grok"
    default_model = "grok-2-1212"

    base_url = "https://api.x.ai/v1"
    timeout = 60.0

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _send(self, messages, options: SendOptions) -> ProviderResponse:
        response = await self.client.post(
            f"{self.base_url}/chat/completions",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            json={
                "model": self.model,
                "messages": self.format_messages(messages),
                "temperature": options.temperature,
                "max_tokens": options.max_tokens,
                "stream": False,
            },
        )

        if response.status_code >= 400:
            raise RuntimeError(
                f"Grok API error: {response.status_code} {response.reason_phrase}"
            )

        data = response.json()
        choices = data.get("choices") or [{}]
        content = choices[0].get("message", {}).get("content") or ""

        return ProviderResponse(
            descriptor=self.descriptor,
            content=content,
            tokens_used=(data.get("usage") or {}).get("total_tokens"),
        )
