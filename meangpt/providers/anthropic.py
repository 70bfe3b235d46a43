"""Anthropic Claude provider implementation."""

import logging
from typing import List, Optional, Dict

from .base import BaseProvider, ProviderResponse, Message, SendOptions

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseProvider):
    """Provider for Anthropic Claude models."""

    provider_name = "anthropic"
    display_name = "Anthropic Claude"
    default_model = "claude-3-5-sonnet-20241022"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self._client = None

    @property
    def client(self):
        """Lazy-load the Anthropic client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    def format_messages(self, messages: List[Message]) -> List[Dict[str, str]]:
        """Claude only accepts user/assistant turns; system text goes separately."""
        return [
            {
                "role": "assistant" if msg.role == "assistant" else "user",
                "content": msg.content,
            }
            for msg in messages
            if msg.role != "system"
        ]

    async def _send(self, messages: List[Message], options: SendOptions) -> ProviderResponse:
        system, turns = self.split_system(messages)

        request = {
            "model": self.model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": self.format_messages(turns),
        }
        if system:
            request["system"] = system

        response = await self.client.messages.create(**request)

        content = ""
        for block in response.content:
            if hasattr(block, "text"):
                content += block.text

        usage = getattr(response, "usage", None)
        return ProviderResponse(
            descriptor=self.descriptor,
            content=content,
            tokens_used=(usage.input_tokens + usage.output_tokens) if usage else None,
        )
