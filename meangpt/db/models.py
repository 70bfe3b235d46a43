"""SQLAlchemy models for durable conversation state."""

from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func

from .database import Base


class ConversationRecord(Base):
    """Master transcript and routing-decision log of one conversation."""
    __tablename__ = "conversations"

    conversation_id = Column(String(64), primary_key=True)
    messages = Column(JSON, default=list)
    routing_decisions = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ProviderContextRecord(Base):
    """One provider's own history within a conversation."""
    __tablename__ = "provider_contexts"

    conversation_id = Column(String(64), primary_key=True)
    provider_id = Column(String(32), primary_key=True)
    messages = Column(JSON, default=list)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
