"""Top-level turn coordinator: route, answer or fan out, aggregate, record."""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..providers.base import Message, SendOptions, utcnow
from .aggregator import ResponseAggregator
from .context_manager import ContextManager, RoutingDecision, ORCHESTRATOR_NAME
from .orchestrator import AggregatedResult, Orchestrator

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """What the boundary layer gets back for one user turn."""
    response: str
    conversation_id: str
    routing: RoutingDecision
    aggregated: Optional[AggregatedResult] = None

    def to_dict(self) -> Dict:
        return {
            "response": self.response,
            "conversation_id": self.conversation_id,
            "routing": self.routing.to_dict(),
            "aggregated": self.aggregated.to_dict() if self.aggregated else None,
        }


class Router:
    """
    Sequences one user turn:
    Received -> Routing -> (DirectAnswering | Forwarding -> Aggregating) -> Persisted.

    Turns on the same conversation id are serialized; different
    conversations proceed concurrently.
    """

    def __init__(
        self,
        context_manager: ContextManager,
        orchestrator: Orchestrator,
        aggregator: ResponseAggregator,
        default_provider: str = "openai",
        forward_options: Optional[SendOptions] = None,
    ):
        self.context_manager = context_manager
        self.orchestrator = orchestrator
        self.aggregator = aggregator
        self.default_provider = default_provider
        self.forward_options = forward_options or SendOptions(temperature=0.7, max_tokens=4000)
        # Entries vanish once no turn holds or awaits the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    async def process_message(
        self,
        conversation_id: Optional[str],
        user_message: str,
    ) -> TurnResult:
        conversation_id = conversation_id or self.context_manager.generate_id()

        async with self._lock_for(conversation_id):
            await self.context_manager.ensure_conversation(conversation_id)
            await self.context_manager.add_message(
                conversation_id,
                Message(role="user", content=user_message, timestamp=utcnow()),
            )

            routing = await self.context_manager.should_forward_to_ais(conversation_id, user_message)
            await self.context_manager.record_routing_decision(conversation_id, user_message, routing)
            logger.info(
                f"Conversation {conversation_id}: forward={routing.should_forward} ({routing.reason})"
            )

            if not routing.should_forward:
                response = await self.handle_direct_response(conversation_id)
                await self.context_manager.add_message(
                    conversation_id,
                    Message(role="assistant", content=response, timestamp=utcnow()),
                )
                return TurnResult(
                    response=response,
                    conversation_id=conversation_id,
                    routing=routing,
                )

            result = await self.handle_forwarding(conversation_id, user_message, routing.providers)
            analyzed = await self.aggregator.analyze_responses(result, user_message)
            formatted = self.aggregator.create_formatted_response(analyzed)

            await self.context_manager.add_message(
                conversation_id,
                Message(role="assistant", content=formatted, timestamp=utcnow()),
            )

            return TurnResult(
                response=formatted,
                conversation_id=conversation_id,
                routing=routing,
                aggregated=analyzed,
            )

    async def handle_direct_response(self, conversation_id: str) -> str:
        """Answer with the default provider using the master transcript."""
        # The master context already ends with the new user turn
        messages = await self.context_manager.get_master_context(conversation_id)
        response = await self.orchestrator.query_single(self.default_provider, messages)

        if response.error:
            return (
                f"{ORCHESTRATOR_NAME}: I encountered an error processing your request: "
                f"{response.error}"
            )
        return response.content

    async def handle_forwarding(
        self,
        conversation_id: str,
        user_message: str,
        requested: Optional[List[str]] = None,
    ) -> AggregatedResult:
        provider_ids = self.resolve_providers(requested)

        # Request context comes from the primary provider's own history
        context: List[Message] = []
        if provider_ids:
            context = await self.context_manager.get_context_for_provider(
                conversation_id, provider_ids[0]
            )
        messages = context + [Message(role="user", content=user_message)]

        result = await self.orchestrator.query_all(messages, provider_ids, self.forward_options)

        by_provider = {r.descriptor.id: r for r in result.responses}
        for provider_id in provider_ids:
            await self.context_manager.add_provider_message(
                conversation_id,
                provider_id,
                Message(role="user", content=user_message, timestamp=utcnow()),
            )
            response = by_provider.get(provider_id)
            if response is not None and not response.error:
                await self.context_manager.add_provider_message(
                    conversation_id,
                    provider_id,
                    Message(role="assistant", content=response.content, timestamp=response.timestamp),
                )

        return result

    def resolve_providers(self, requested: Optional[List[str]]) -> List[str]:
        """Requested ids narrowed to configured ones; nothing usable means all of them."""
        available = self.orchestrator.get_available_providers()
        if not requested:
            return available

        resolved = []
        for provider_id in requested:
            if provider_id in available and provider_id not in resolved:
                resolved.append(provider_id)

        if not resolved:
            logger.info(f"None of {requested} are configured, using all available providers")
            return available
        return resolved

    async def create_new_conversation(self) -> str:
        conversation = await self.context_manager.start_conversation()
        return conversation.id

    async def get_conversation_history(self, conversation_id: str) -> List[Message]:
        return await self.context_manager.get_master_context(conversation_id)

    def get_available_providers(self) -> List[str]:
        return self.orchestrator.get_available_providers()

    async def delete_conversation(self, conversation_id: str) -> None:
        await self.context_manager.delete_conversation(conversation_id)
        self._locks.pop(conversation_id, None)
