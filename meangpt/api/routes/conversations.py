"""Conversation API routes."""

from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime

from ..deps import get_app_context
from ...core.app_context import AppContext

router = APIRouter()


class CreateConversationResponse(BaseModel):
    conversation_id: str


class MessageResponse(BaseModel):
    role: str
    content: str
    timestamp: Optional[datetime] = None


class HistoryResponse(BaseModel):
    conversation_id: str
    messages: List[MessageResponse]


@router.post("/", response_model=CreateConversationResponse)
async def create_conversation(ctx: AppContext = Depends(get_app_context)):
    """Start a new, empty conversation."""
    return CreateConversationResponse(conversation_id=await ctx.router.create_new_conversation())


@router.get("/{conversation_id}/history", response_model=HistoryResponse)
async def get_history(conversation_id: str, ctx: AppContext = Depends(get_app_context)):
    """Get the master transcript of a conversation."""
    conversation = await ctx.context_manager.load_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")

    messages = await ctx.router.get_conversation_history(conversation_id)
    return HistoryResponse(
        conversation_id=conversation_id,
        messages=[
            MessageResponse(role=m.role, content=m.content, timestamp=m.timestamp)
            for m in messages
        ],
    )


@router.delete("/{conversation_id}")
async def delete_conversation(conversation_id: str, ctx: AppContext = Depends(get_app_context)):
    """Delete a conversation from memory and storage."""
    await ctx.router.delete_conversation(conversation_id)
    return {"status": "deleted", "conversation_id": conversation_id}
