"""Conversation and per-provider context management, plus the routing decision."""

import logging
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from ..db.storage import ConversationStorage
from ..providers.base import BaseProvider, Message, SendOptions, utcnow
from ..providers.factory import ProviderType
from .exceptions import ConversationNotFound, RoutingClassificationError, StorageUnavailable

logger = logging.getLogger(__name__)


ORCHESTRATOR_NAME = "MeanGPT"

SELF_REFERENCE_KEYWORDS = ("meangpt", "mean gpt", "what is your name", "who are you")

FOLLOW_UP_PREFIXES = (
    "and ", "but ", "also ", "what about ", "how about ",
    "that's ", "that is ", "it's ", "it is ",
    "why ", "explain ", "clarify ",
)
FOLLOW_UP_MARKERS = ("wrong", "incorrect", "mistake")

# Marker left in the master transcript by a rendered aggregated answer
AGGREGATED_ANSWER_MARKER = "Mean Answer"

PROVIDER_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Provide clear, accurate, and concise responses."
)

MASTER_SYSTEM_PROMPT = f"""You are {ORCHESTRATOR_NAME}, an AI orchestrator that manages responses from multiple AI providers (OpenAI, Anthropic, Gemini, and Grok).
Your role is to:
1. Analyze user questions to determine if they need to be forwarded to other AIs
2. Summarize responses from multiple AIs
3. Provide mean/average answers when appropriate
4. Select the best answer based on accuracy and completeness
5. Handle follow-up questions intelligently"""

ROUTING_CONTEXT_MESSAGES = 6
ROUTING_SNIPPET_CHARS = 200
SUMMARY_TOPIC_CHARS = 50


@dataclass
class Conversation:
    """Master transcript plus one independent history per provider."""
    id: str
    messages: List[Message] = field(default_factory=list)
    provider_contexts: Dict[str, List[Message]] = field(default_factory=dict)
    routing_log: List[Dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class RoutingDecision:
    """Per-message verdict on whether, and to which providers, to forward."""
    should_forward: bool
    reason: str
    providers: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "should_forward": self.should_forward,
            "providers": self.providers,
            "reason": self.reason,
        }


class RoutingVerdict(BaseModel):
    """Strict shape of the classifier's JSON reply."""
    model_config = ConfigDict(extra="forbid")

    decision: Literal["FORWARD_ALL", "FORWARD_SPECIFIC", "DIRECT_REPLY"]
    providers: Optional[List[ProviderType]] = None
    reason: str

    @model_validator(mode="after")
    def _specific_needs_providers(self) -> "RoutingVerdict":
        if self.decision == "FORWARD_SPECIFIC" and not self.providers:
            raise ValueError("FORWARD_SPECIFIC requires at least one provider")
        return self

    def to_decision(self) -> RoutingDecision:
        providers = None
        if self.decision == "FORWARD_SPECIFIC":
            providers = [p.value for p in self.providers]
        return RoutingDecision(
            should_forward=self.decision != "DIRECT_REPLY",
            providers=providers,
            reason=self.reason,
        )


class ConversationStore:
    """In-memory conversation cache keyed by conversation id."""

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def put(self, conversation: Conversation) -> None:
        self._conversations[conversation.id] = conversation

    def delete(self, conversation_id: str) -> None:
        self._conversations.pop(conversation_id, None)

    def all(self) -> List[Conversation]:
        return list(self._conversations.values())

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations


class ContextManager:
    """
    Owns the master transcript and the per-provider histories of every
    conversation.

    Handles:
    - Bounded histories: past ``max_messages`` the oldest turns are
      folded into one synthetic system summary
    - Read-through rehydration from storage on a cache miss
    - Write-through persistence (failures are logged, never raised)
    - The per-message routing decision
    """

    def __init__(
        self,
        storage: Optional[ConversationStorage] = None,
        classifier: Optional[BaseProvider] = None,
        max_messages: int = 20,
        store: Optional[ConversationStore] = None,
    ):
        self.storage = storage
        self.classifier = classifier
        self.max_messages = max_messages
        self.store = store or ConversationStore()

    # ------------------------------------------------------------------
    # Conversation lifecycle
    # ------------------------------------------------------------------

    def create_conversation(self, conversation_id: Optional[str] = None) -> Conversation:
        conversation_id = conversation_id or self.generate_id()
        if conversation_id in self.store:
            logger.warning(f"Replacing cached conversation {conversation_id}")

        conversation = Conversation(
            id=conversation_id,
            provider_contexts={p.value: [] for p in ProviderType},
        )
        self.store.put(conversation)
        logger.info(f"Created conversation {conversation_id}")
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Memory-only lookup."""
        return self.store.get(conversation_id)

    async def load_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """
        Look in memory, then fall back to durable storage.

        Returns None only when storage has no record of the id. A failing
        read raises StorageUnavailable so the caller never mistakes it for
        a new conversation and overwrites what is stored.
        """
        conversation = self.store.get(conversation_id)
        if conversation is not None or self.storage is None:
            return conversation

        try:
            created_at = await self.storage.load_created_at(conversation_id)
            if created_at is None:
                return None
            messages, routing_log = await self.storage.load_master(conversation_id)
            provider_contexts = await self.storage.load_provider_contexts(conversation_id)
        except Exception as e:
            logger.error(f"Failed to load conversation {conversation_id}: {e}", exc_info=True)
            raise StorageUnavailable(conversation_id) from e

        conversation = Conversation(
            id=conversation_id,
            messages=messages,
            provider_contexts={p.value: [] for p in ProviderType},
            routing_log=routing_log,
            created_at=created_at,
        )
        conversation.provider_contexts.update(provider_contexts)
        self.store.put(conversation)
        logger.info(f"Rehydrated conversation {conversation_id} from storage")
        return conversation

    async def start_conversation(self, conversation_id: Optional[str] = None) -> Conversation:
        """Create a conversation and record it in storage right away."""
        conversation = self.create_conversation(conversation_id)
        await self._persist_master(conversation)
        return conversation

    async def ensure_conversation(self, conversation_id: Optional[str]) -> Conversation:
        if conversation_id:
            conversation = await self.load_conversation(conversation_id)
            if conversation is not None:
                return conversation
        return self.create_conversation(conversation_id)

    async def delete_conversation(self, conversation_id: str) -> None:
        self.store.delete(conversation_id)
        if self.storage is not None:
            await self.storage.delete_conversation(conversation_id)

    def list_conversations(self) -> List[Conversation]:
        return self.store.all()

    async def _require(self, conversation_id: str) -> Conversation:
        conversation = await self.load_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return conversation

    # ------------------------------------------------------------------
    # Appends
    # ------------------------------------------------------------------

    async def add_message(self, conversation_id: str, message: Message) -> None:
        """Append to the master transcript and trim it if needed."""
        conversation = await self._require(conversation_id)

        conversation.messages = self._trim(
            conversation.messages + [message],
            "Previous conversation summary",
        )
        conversation.updated_at = utcnow()

        await self._persist_master(conversation)

    async def add_provider_message(
        self,
        conversation_id: str,
        provider_id: str,
        message: Message,
    ) -> None:
        """Append to one provider's own history; other providers are untouched."""
        conversation = await self._require(conversation_id)

        history = conversation.provider_contexts.get(provider_id, [])
        conversation.provider_contexts[provider_id] = self._trim(
            history + [message],
            "Previous context summary",
        )
        conversation.updated_at = utcnow()

        if self.storage is not None:
            try:
                await self.storage.save_provider_context(
                    conversation_id,
                    provider_id,
                    conversation.provider_contexts[provider_id],
                )
            except Exception as e:
                logger.error(
                    f"Failed to persist {provider_id} context for {conversation_id}: {e}",
                    exc_info=True,
                )

    async def record_routing_decision(
        self,
        conversation_id: str,
        query: str,
        decision: RoutingDecision,
    ) -> None:
        conversation = await self._require(conversation_id)

        if not decision.should_forward:
            label = "direct_reply"
        elif decision.providers:
            label = "forward_some"
        else:
            label = "forward_all"

        entry = {
            "message_index": max(len(conversation.messages) - 1, 0),
            "query": query,
            "decision": label,
            "selected_providers": decision.providers,
            "reason": decision.reason,
            "timestamp": utcnow().isoformat(),
        }
        conversation.routing_log.append(entry)

        if self.storage is not None:
            try:
                await self.storage.append_routing_decision(conversation_id, entry)
            except Exception as e:
                logger.error(
                    f"Failed to persist routing decision for {conversation_id}: {e}",
                    exc_info=True,
                )

    async def _persist_master(self, conversation: Conversation) -> None:
        if self.storage is None:
            return
        try:
            await self.storage.save_master(
                conversation.id,
                conversation.messages,
                conversation.routing_log,
            )
        except Exception as e:
            logger.error(
                f"Failed to persist master transcript for {conversation.id}: {e}",
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Trimming
    # ------------------------------------------------------------------

    def _trim(self, messages: List[Message], label: str) -> List[Message]:
        if len(messages) <= self.max_messages:
            return messages

        excess = len(messages) - self.max_messages
        removed, kept = messages[:excess], messages[excess:]

        summary = Message(
            role="system",
            content=f"{label}: {self.create_summary(removed)}",
            timestamp=utcnow(),
        )
        logger.info(f"Trimmed {len(removed)} messages into a summary")
        return [summary] + kept

    @staticmethod
    def create_summary(messages: List[Message]) -> str:
        topics = ", ".join(
            m.content[:SUMMARY_TOPIC_CHARS] for m in messages if m.role == "user"
        )
        return f"Topics discussed: {topics}"

    # ------------------------------------------------------------------
    # Context views
    # ------------------------------------------------------------------

    async def get_context_for_provider(
        self,
        conversation_id: str,
        provider_id: str,
        include_system_prompt: bool = True,
    ) -> List[Message]:
        """History seeded only from this provider's own prior turns."""
        messages: List[Message] = []
        if include_system_prompt:
            messages.append(Message(role="system", content=PROVIDER_SYSTEM_PROMPT))

        conversation = await self.load_conversation(conversation_id)
        if conversation is not None:
            messages.extend(conversation.provider_contexts.get(provider_id, []))
        return messages

    async def get_master_context(self, conversation_id: str) -> List[Message]:
        messages = [Message(role="system", content=MASTER_SYSTEM_PROMPT)]

        conversation = await self.load_conversation(conversation_id)
        if conversation is not None:
            messages.extend(conversation.messages)
        return messages

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def should_forward_to_ais(self, conversation_id: str, user_message: str) -> RoutingDecision:
        """Decide whether this message goes to the providers or is answered directly."""
        conversation = await self.load_conversation(conversation_id)
        history = self._prior_messages(conversation, user_message)

        if not history:
            return RoutingDecision(
                should_forward=True,
                reason="First message in conversation - getting comprehensive responses",
            )

        try:
            decision = await self._classify(history, user_message)
            logger.debug(f"Routing decision for {conversation_id}: {decision}")
            return decision
        except RoutingClassificationError as e:
            logger.warning(f"Routing classifier unavailable, falling back to simple logic: {e}")
            return self.fallback_decision(history, user_message)

    @staticmethod
    def _prior_messages(conversation: Optional[Conversation], user_message: str) -> List[Message]:
        """Transcript before the message being routed (it may already be appended)."""
        if conversation is None:
            return []
        history = conversation.messages
        if history and history[-1].role == "user" and history[-1].content == user_message:
            history = history[:-1]
        return history

    async def _classify(self, history: List[Message], user_message: str) -> RoutingDecision:
        if self.classifier is None:
            raise RoutingClassificationError("No routing classifier configured")

        prompt = self.build_routing_prompt(history[-ROUTING_CONTEXT_MESSAGES:], user_message)
        response = await self.classifier.send_message(
            [Message(role="user", content=prompt)],
            SendOptions(temperature=0.1, max_tokens=200),
        )

        if response.error:
            raise RoutingClassificationError(response.error)
        if not response.content:
            raise RoutingClassificationError("No routing response received")

        try:
            verdict = RoutingVerdict.model_validate_json(response.content.strip())
        except ValidationError as e:
            raise RoutingClassificationError(f"Unusable routing reply: {e}") from e

        return verdict.to_decision()

    @staticmethod
    def build_routing_prompt(context: List[Message], user_message: str) -> str:
        context_summary = "\n".join(
            f"{m.role}: {m.content[:ROUTING_SNIPPET_CHARS]}"
            f"{'...' if len(m.content) > ROUTING_SNIPPET_CHARS else ''}"
            for m in context
        )

        return f"""You are {ORCHESTRATOR_NAME}'s routing system. Decide how to handle the user's latest message.

{ORCHESTRATOR_NAME} forwards questions to several AI providers (openai, anthropic, gemini, grok),
compares their answers, and produces a consolidated "mean" answer and a judged-best answer.
It can also reply directly about itself or its previous analysis.

## Decisions
FORWARD_ALL: send to every configured provider.
FORWARD_SPECIFIC: send only to the named providers.
DIRECT_REPLY: {ORCHESTRATOR_NAME} answers without forwarding.

Use DIRECT_REPLY when the user addresses {ORCHESTRATOR_NAME} directly, asks about its identity or
how it works, or follows up on its previous analysis or methodology.
Use FORWARD_SPECIFIC when the user names particular AIs ("ask chatgpt", "what does claude think").
Use FORWARD_ALL for general questions, new topics, and anything needing multiple perspectives.

## Recent Conversation Context
{context_summary}

## Current User Message
"{user_message}"

Respond with ONLY a JSON object in this exact format:
{{"decision": "FORWARD_ALL" | "FORWARD_SPECIFIC" | "DIRECT_REPLY", "providers": ["openai", "anthropic", "gemini", "grok"] | null, "reason": "why this decision was made"}}"""

    @staticmethod
    def fallback_decision(history: List[Message], user_message: str) -> RoutingDecision:
        """Static rule used when the classifier is unavailable or unparseable."""
        lower = user_message.lower()

        if any(keyword in lower for keyword in SELF_REFERENCE_KEYWORDS):
            return RoutingDecision(
                should_forward=False,
                reason=f"Fallback: Direct {ORCHESTRATOR_NAME} interaction detected",
            )

        if ContextManager.is_follow_up(user_message) and ContextManager._last_turn_aggregated(history):
            return RoutingDecision(
                should_forward=False,
                reason=f"Fallback: Follow-up on {ORCHESTRATOR_NAME}'s previous analysis",
            )

        return RoutingDecision(
            should_forward=True,
            reason="Fallback: General question routing",
        )

    @staticmethod
    def is_follow_up(message: str) -> bool:
        lower = message.strip().lower()
        if lower.startswith(FOLLOW_UP_PREFIXES):
            return True
        return any(marker in lower for marker in FOLLOW_UP_MARKERS)

    @staticmethod
    def _last_turn_aggregated(history: List[Message]) -> bool:
        for message in reversed(history):
            if message.role == "assistant":
                return AGGREGATED_ANSWER_MARKER in message.content
        return False

    @staticmethod
    def generate_id() -> str:
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
        return f"conv_{int(time.time() * 1000)}_{suffix}"
