"""
Database engine and session factory.

The deployment store opens one short session per call, so connections are
held for a single statement batch. A running pipeline can hold two at once
(a periodic log flush overlapping a status save); the pool is sized for
every allowed pipeline plus the API's own readers.
"""
import logging

from sqlalchemy import MetaData, text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from deployer.core.config import settings

logger = logging.getLogger(__name__)

# Concurrent sessions a single deploy pipeline may hold
SESSIONS_PER_PIPELINE = 2


def pool_size_for(max_concurrent_deployments: int, api_connections: int) -> int:
    """Connections needed so no pipeline waits on the pool for a log flush."""
    return max_concurrent_deployments * SESSIONS_PER_PIPELINE + api_connections


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=pool_size_for(settings.MAX_CONCURRENT_DEPLOYMENTS, settings.DB_API_CONNECTIONS),
    max_overflow=settings.DB_API_CONNECTIONS,
    pool_pre_ping=True,
    # Sessions are short; a caller waiting this long means the pool is exhausted
    pool_timeout=10,
    connect_args={
        "command_timeout": settings.DB_STATEMENT_TIMEOUT,
        "server_settings": {
            "statement_timeout": str(settings.DB_STATEMENT_TIMEOUT * 1000),
        },
    },
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all database models."""
    metadata = MetaData(schema=settings.DB_SCHEMA)


async def ping_database() -> bool:
    """Run a trivial query; False if the database is unreachable."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database ping failed: {e}")
        return False
