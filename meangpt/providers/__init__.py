# Providers module
from .base import (
    BaseProvider,
    Message,
    ProviderDescriptor,
    ProviderResponse,
    SendOptions,
)
from .anthropic import AnthropicProvider
from .openai import OpenAIProvider
from .gemini import GeminiProvider
from .grok import GrokProvider
from .factory import create_provider, discover_providers, ProviderType

__all__ = [
    "BaseProvider",
    "Message",
    "ProviderDescriptor",
    "ProviderResponse",
    "SendOptions",
    "AnthropicProvider",
    "OpenAIProvider",
    "GeminiProvider",
    "GrokProvider",
    "create_provider",
    "discover_providers",
    "ProviderType",
]
