"""Provider factory for creating provider instances."""

import logging
from enum import Enum
from typing import Dict, Optional

from .base import BaseProvider
from .anthropic import AnthropicProvider
from .openai import OpenAIProvider
from .gemini import GeminiProvider
from .grok import GrokProvider
from ..config import Settings

logger = logging.getLogger(__name__)


class ProviderType(str, Enum):
    """Supported provider types, in fan-out order."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    GROK = "grok"


_PROVIDER_CLASSES = {
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.ANTHROPIC: AnthropicProvider,
    ProviderType.GEMINI: GeminiProvider,
    ProviderType.GROK: GrokProvider,
}


def _credentials(provider_type: ProviderType, settings: Settings) -> tuple:
    """Return (api_key, model) configured for a provider type."""
    return {
        ProviderType.OPENAI: (settings.openai_api_key, settings.openai_model),
        ProviderType.ANTHROPIC: (settings.anthropic_api_key, settings.anthropic_model),
        ProviderType.GEMINI: (settings.gemini_api_key, settings.gemini_model),
        ProviderType.GROK: (settings.grok_api_key, settings.grok_model),
    }[provider_type]


def create_provider(
    provider_type: ProviderType | str,
    settings: Settings,
    model: Optional[str] = None,
) -> BaseProvider:
    """
    Create a provider instance.

    Args:
        provider_type: The type of provider to create
        settings: Settings holding the credentials
        model: Optional model override

    Returns:
        A provider instance

    Raises:
        ValueError: If the provider type is unknown
    """
    if isinstance(provider_type, str):
        try:
            provider_type = ProviderType(provider_type.lower())
        except ValueError:
            raise ValueError(f"Unknown provider type: {provider_type}")

    api_key, default_model = _credentials(provider_type, settings)
    return _PROVIDER_CLASSES[provider_type](api_key=api_key, model=model or default_model)


def discover_providers(settings: Settings) -> Dict[str, BaseProvider]:
    """
    Build one provider per present credential.

    A missing key silently excludes that provider; it is not an error.
    """
    providers: Dict[str, BaseProvider] = {}
    for provider_type in ProviderType:
        provider = create_provider(provider_type, settings)
        if provider.is_available():
            providers[provider_type.value] = provider
        else:
            logger.debug(f"No credentials for {provider_type.value}, skipping")

    logger.info(f"Discovered providers: {', '.join(providers) or 'none'}")
    return providers
