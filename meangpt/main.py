"""Main FastAPI application for MeanGPT."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .config import settings
from .db.database import init_db
from .core.app_context import build_app_context
from .core.exceptions import ConversationNotFound, StorageUnavailable
from .api.routes import chat, conversations, providers

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting MeanGPT...")

    if not settings.ephemeral:
        await init_db()
        logger.info("Database initialized")

    app.state.context = build_app_context(settings)

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.context.aclose()


# Create FastAPI app
app = FastAPI(
    title="MeanGPT",
    description="Ask several AI providers at once and get a consensus and a best answer",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConversationNotFound)
async def conversation_not_found_handler(request: Request, exc: ConversationNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include routers
app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(conversations.router, prefix="/api/conversations", tags=["conversations"])
app.include_router(providers.router, prefix="/api/providers", tags=["providers"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "MeanGPT",
        "version": "1.0.0",
        "status": "running",
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    context = getattr(request.app.state, "context", None)
    return {
        "status": "healthy",
        "providers_available": context.orchestrator.get_available_providers() if context else [],
    }


def start():
    """Start the server."""
    uvicorn.run(
        "meangpt.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    start()
