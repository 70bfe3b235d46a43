"""Chat API route: one user turn in, one rendered answer out."""

from fastapi import APIRouter, Depends
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..deps import get_app_context
from ...core.app_context import AppContext

router = APIRouter()


class ChatRequest(BaseModel):
    """A user turn, optionally continuing an existing conversation."""
    conversation_id: Optional[str] = Field(default=None, max_length=64)
    message: str = Field(..., min_length=1)


class RoutingInfo(BaseModel):
    should_forward: bool
    providers: Optional[List[str]] = None
    reason: str


class ChatResponse(BaseModel):
    response: str
    conversation_id: str
    routing: RoutingInfo
    aggregated: Optional[Dict[str, Any]] = None


@router.post("/", response_model=ChatResponse)
async def chat(request: ChatRequest, ctx: AppContext = Depends(get_app_context)):
    """Process a user message through the router."""
    result = await ctx.router.process_message(request.conversation_id, request.message)
    return result.to_dict()
