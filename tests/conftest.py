"""Shared test fixtures and configuration."""

import pytest
import asyncio
import os
from typing import AsyncGenerator, Callable

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "false"

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from meangpt.api.deps import get_app_context
from meangpt.config import Settings
from meangpt.core.aggregator import ResponseAggregator
from meangpt.core.app_context import AppContext
from meangpt.core.context_manager import ContextManager
from meangpt.core.orchestrator import Orchestrator
from meangpt.core.router import Router
from meangpt.db.database import init_db
from meangpt.db.storage import ConversationStorage
from meangpt.main import app
from meangpt.providers.base import BaseProvider, ProviderResponse


class StubProvider(BaseProvider):
    """In-process provider that records calls and replies (or fails) on demand."""

    def __init__(self, provider_name, reply="", error=None, display_name=None, delay=0.0):
        super().__init__(api_key="test-key", model=f"{provider_name}-model")
        self.provider_name = provider_name
        self.display_name = display_name or provider_name.title()
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = []

    async def _send(self, messages, options):
        self.calls.append((list(messages), options))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise RuntimeError(self.error)
        content = self.reply(messages) if callable(self.reply) else self.reply
        return ProviderResponse(descriptor=self.descriptor, content=content, tokens_used=12)


@pytest.fixture
def make_provider() -> Callable[..., StubProvider]:
    """Factory for stub providers."""
    return StubProvider


@pytest.fixture
def test_settings() -> Settings:
    """Settings independent of the surrounding environment."""
    return Settings(
        _env_file=None,
        OPENAI_API_KEY=None,
        ANTHROPIC_API_KEY=None,
        GEMINI_API_KEY=None,
        GROK_API_KEY=None,
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        EPHEMERAL=True,
    )


@pytest.fixture
async def async_engine(tmp_path):
    """Create a file-backed async engine for testing."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'meangpt-test.db'}",
        echo=False,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def storage(async_engine) -> AsyncGenerator[ConversationStorage, None]:
    """Storage collaborator bound to the test database."""
    session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    yield ConversationStorage(session_maker)


@pytest.fixture
def app_context(test_settings, storage):
    """Application context wired to stub providers and the test database."""
    providers = {
        "openai": StubProvider("openai", reply="Paris", display_name="ChatGPT"),
        "grok": StubProvider("grok", reply="Paris, France", display_name="Grok"),
    }
    context_manager = ContextManager(storage=storage)
    orchestrator = Orchestrator(providers)
    aggregator = ResponseAggregator()
    return AppContext(
        settings=test_settings,
        providers=providers,
        storage=storage,
        context_manager=context_manager,
        orchestrator=orchestrator,
        aggregator=aggregator,
        router=Router(context_manager, orchestrator, aggregator),
    )


@pytest.fixture
async def client(app_context) -> AsyncGenerator[AsyncClient, None]:
    """Create test client bound to the stub application context."""
    app.dependency_overrides[get_app_context] = lambda: app_context
    app.state.context = app_context

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
