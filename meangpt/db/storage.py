"""Durable storage of conversation histories, keyed by conversation and provider."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .database import AsyncSessionLocal
from .models import ConversationRecord, ProviderContextRecord
from ..providers.base import Message, utcnow

logger = logging.getLogger(__name__)


class ConversationStorage:
    """
    Storage collaborator for the context manager.

    Every save is an idempotent overwrite. Loading an absent key returns
    an empty result rather than raising.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or AsyncSessionLocal

    async def save_provider_context(
        self,
        conversation_id: str,
        provider_id: str,
        messages: List[Message],
    ) -> None:
        payload = [m.to_dict() for m in messages]
        async with self.session_factory() as db:
            record = await db.get(ProviderContextRecord, (conversation_id, provider_id))
            if record is None:
                record = ProviderContextRecord(
                    conversation_id=conversation_id,
                    provider_id=provider_id,
                )
                db.add(record)
            record.messages = payload
            await self._ensure_conversation(db, conversation_id)
            await db.commit()

    async def load_provider_context(self, conversation_id: str, provider_id: str) -> List[Message]:
        async with self.session_factory() as db:
            record = await db.get(ProviderContextRecord, (conversation_id, provider_id))
            if record is None:
                return []
            return [Message.from_dict(m) for m in record.messages or []]

    async def load_provider_contexts(self, conversation_id: str) -> Dict[str, List[Message]]:
        """Load every provider context stored for a conversation."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(ProviderContextRecord).where(
                    ProviderContextRecord.conversation_id == conversation_id
                )
            )
            return {
                record.provider_id: [Message.from_dict(m) for m in record.messages or []]
                for record in result.scalars().all()
            }

    async def save_master(
        self,
        conversation_id: str,
        messages: List[Message],
        routing_decisions: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        async with self.session_factory() as db:
            record = await self._ensure_conversation(db, conversation_id)
            record.messages = [m.to_dict() for m in messages]
            if routing_decisions is not None:
                record.routing_decisions = list(routing_decisions)
            await db.commit()

    async def load_master(self, conversation_id: str) -> Tuple[List[Message], List[Dict[str, Any]]]:
        async with self.session_factory() as db:
            record = await db.get(ConversationRecord, conversation_id)
            if record is None:
                return [], []
            messages = [Message.from_dict(m) for m in record.messages or []]
            return messages, list(record.routing_decisions or [])

    async def append_routing_decision(self, conversation_id: str, decision: Dict[str, Any]) -> None:
        async with self.session_factory() as db:
            record = await self._ensure_conversation(db, conversation_id)
            # Reassign so the JSON column is flagged dirty
            record.routing_decisions = list(record.routing_decisions or []) + [decision]
            await db.commit()

    async def conversation_exists(self, conversation_id: str) -> bool:
        async with self.session_factory() as db:
            record = await db.get(ConversationRecord, conversation_id)
            return record is not None

    async def load_created_at(self, conversation_id: str) -> Optional[datetime]:
        """Creation time of a stored conversation, or None if it was never saved."""
        async with self.session_factory() as db:
            record = await db.get(ConversationRecord, conversation_id)
            if record is None:
                return None
            created_at = record.created_at or utcnow()
            # sqlite hands back naive datetimes
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            return created_at

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self.session_factory() as db:
            await db.execute(
                delete(ProviderContextRecord).where(
                    ProviderContextRecord.conversation_id == conversation_id
                )
            )
            await db.execute(
                delete(ConversationRecord).where(
                    ConversationRecord.conversation_id == conversation_id
                )
            )
            await db.commit()
        logger.info(f"Deleted stored conversation {conversation_id}")

    @staticmethod
    async def _ensure_conversation(db: AsyncSession, conversation_id: str) -> ConversationRecord:
        record = await db.get(ConversationRecord, conversation_id)
        if record is None:
            record = ConversationRecord(
                conversation_id=conversation_id,
                messages=[],
                routing_decisions=[],
            )
            db.add(record)
        return record
