"""Application context built once at startup and shared by every request."""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from ..config import Settings, get_settings
from ..db.storage import ConversationStorage
from ..providers.base import BaseProvider, SendOptions
from ..providers.factory import ProviderType, create_provider, discover_providers
from .aggregator import ResponseAggregator
from .context_manager import ContextManager
from .orchestrator import Orchestrator
from .router import Router

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything a request handler needs; never re-initialized per request."""
    settings: Settings
    providers: Dict[str, BaseProvider]
    storage: Optional[ConversationStorage]
    context_manager: ContextManager
    orchestrator: Orchestrator
    aggregator: ResponseAggregator
    router: Router

    async def aclose(self) -> None:
        """Close every provider client opened during the process lifetime."""
        gateways = list(self.providers.values())
        gateways += [self.context_manager.classifier, self.aggregator.synthesizer]
        closed = set()
        for gateway in gateways:
            if gateway is None or id(gateway) in closed:
                continue
            closed.add(id(gateway))
            await gateway.aclose()


def build_app_context(
    settings: Optional[Settings] = None,
    storage: Optional[ConversationStorage] = None,
) -> AppContext:
    """Discover credentials and wire the core components together."""
    settings = settings or get_settings()

    providers = discover_providers(settings)

    # The routing classifier and the synthesizer are fast, cheap OpenAI models
    classifier: Optional[BaseProvider] = None
    synthesizer: Optional[BaseProvider] = None
    if settings.openai_api_key:
        classifier = create_provider(ProviderType.OPENAI, settings, model=settings.routing_model)
        synthesizer = create_provider(ProviderType.OPENAI, settings, model=settings.synthesis_model)
    else:
        logger.warning("OPENAI_API_KEY not set: routing and synthesis use their fallbacks")

    if settings.ephemeral:
        storage = None
    elif storage is None:
        storage = ConversationStorage()

    context_manager = ContextManager(
        storage=storage,
        classifier=classifier,
        max_messages=settings.max_messages_per_context,
    )
    orchestrator = Orchestrator(providers)
    aggregator = ResponseAggregator(synthesizer)
    router = Router(
        context_manager=context_manager,
        orchestrator=orchestrator,
        aggregator=aggregator,
        default_provider=settings.default_provider,
        forward_options=SendOptions(
            temperature=settings.forward_temperature,
            max_tokens=settings.forward_max_tokens,
        ),
    )

    logger.info(
        f"MeanGPT ready with providers: {', '.join(providers) or 'none'}"
        f"{' (ephemeral)' if storage is None else ''}"
    )

    return AppContext(
        settings=settings,
        providers=providers,
        storage=storage,
        context_manager=context_manager,
        orchestrator=orchestrator,
        aggregator=aggregator,
        router=router,
    )
