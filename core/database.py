"""
Database session management with SQLAlchemy async
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from core.config import settings
from models.base import Base
import logging

logger = logging.getLogger(__name__)


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create async engine for the checkpoint database"""
    return create_async_engine(
        database_url or settings.DATABASE_URL,
        echo=False,
        poolclass=NullPool,  # Runs are short-lived; no pooling across runs
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


async def init_models(engine: AsyncEngine) -> None:
    """Create checkpoint tables if they do not exist"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Checkpoint tables ready")
