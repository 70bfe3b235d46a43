"""Provider API routes."""

from fastapi import APIRouter, Depends

from ..deps import get_app_context
from ...core.app_context import AppContext

router = APIRouter()


@router.get("/")
async def list_providers(ctx: AppContext = Depends(get_app_context)):
    """List the providers whose credentials were present at startup."""
    return {
        "providers": [
            {
                "id": provider_id,
                "display_name": provider.display_name,
                "model": provider.model,
            }
            for provider_id, provider in ctx.providers.items()
        ]
    }
