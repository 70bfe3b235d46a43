"""OpenAI provider implementation."""

import logging
from typing import List, Optional

from .base import BaseProvider, ProviderResponse, Message, SendOptions

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseProvider):
    """Provider for OpenAI chat models."""

    provider_name = "openai"
    display_name = "OpenAI ChatGPT"
    default_model = "gpt-4o-mini"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self._client = None

    @property
    def client(self):
        """Lazy-load the OpenAI client."""
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def _send(self, messages: List[Message], options: SendOptions) -> ProviderResponse:
        # Streaming is not delivered incrementally; always request the full body.
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=self.format_messages(messages),
            max_tokens=options.max_tokens,
            temperature=options.temperature,
        )

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        usage = getattr(response, "usage", None)
        return ProviderResponse(
            descriptor=self.descriptor,
            content=content,
            tokens_used=usage.total_tokens if usage else None,
        )
