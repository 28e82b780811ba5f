import asyncio
import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from loadmatch.core.config import get_settings
from loadmatch.models.base import Base

logger = logging.getLogger(__name__)
settings = get_settings()


def get_async_database_url(url: str) -> str:
    """Pick the async driver for a URL: psycopg for Postgres, aiosqlite for SQLite."""
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    elif url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("sqlite://"):
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    return url


database_url = get_async_database_url(settings.database_url)

engine_kwargs = {}
if "postgresql" in database_url:
    engine_kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_recycle": 3600,   # Recycle connections after 1 hour
        "pool_timeout": 10,     # Wait up to 10 seconds for a connection from pool
        "max_overflow": 10,
        "connect_args": {"connect_timeout": 10},
    }

engine: AsyncEngine = create_async_engine(
    database_url,
    future=True,
    echo=settings.debug,
    **engine_kwargs,
)

AsyncSessionFactory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionFactory() as session:
        yield session


async def init_database() -> None:
    """Create all tables. In production use Alembic migrations instead."""
    logger.info("Initializing database tables")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as exc:
        # Migrations are the source of truth; existing schema keeps working
        logger.warning("create_all failed (expected if using Alembic)", extra={"error": str(exc)})


async def check_database_connection(timeout: float = 10.0) -> bool:
    """Return True when a trivial query succeeds within ``timeout`` seconds."""

    async def _ping():
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            result.fetchone()

    try:
        await asyncio.wait_for(_ping(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        logger.error("database_ping_timeout", extra={"timeout": timeout})
        return False
    except Exception as exc:
        logger.error("database_ping_failed", extra={"error": str(exc), "error_type": type(exc).__name__})
        return False
