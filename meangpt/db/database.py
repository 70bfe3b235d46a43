"""Database connection and session management."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from typing import Optional
import os

from ..config import settings

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Base class for models
Base = declarative_base()


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Initialize the database, creating all tables."""
    bind = bind or engine

    # Ensure the sqlite directory exists
    url = str(bind.url)
    if url.startswith("sqlite") and ":memory:" not in url:
        db_path = bind.url.database or ""
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)

    async with bind.begin() as conn:
        # Import models to ensure they're registered
        from . import models  # noqa
        await conn.run_sync(Base.metadata.create_all)
