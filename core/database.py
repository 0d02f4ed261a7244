"""
Database session management with SQLAlchemy async
"""

from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from core.config import settings, Settings
import logging

logger = logging.getLogger(__name__)


def create_engine(config: Optional[Settings] = None) -> AsyncEngine:
    """Create an async engine for the configured database"""
    config = config or settings
    logger.debug(f"Creating database engine for environment {config.ENVIRONMENT}")
    return create_async_engine(
        config.DATABASE_URL,
        echo=config.ENVIRONMENT == "development",
        poolclass=NullPool,
        future=True
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Create session factory bound to an engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )


async def get_session(session_maker: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Get database session"""
    async with session_maker() as session:
        yield session
