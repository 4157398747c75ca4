"""
Database Initialization

Async SQLAlchemy engine, session factory and table creation for the
nursery order pipeline.

Tables: users, products, product_sizes, cart_items, push_tokens,
pending_orders, orders, order_status_entries
"""
import asyncio
import logging
from typing import AsyncGenerator, Any, Dict

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker

from ..config import settings
from .models import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_wal(dbapi_connection, connection_record) -> None:
    """Enable WAL mode for better concurrency (prevents most locking issues)."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")  # 30 second timeout
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_engine(database_url: str, **engine_options: Any) -> AsyncEngine:
    """
    Create an async engine with the pipeline's connection settings.

    Args:
        database_url: SQLAlchemy async URL (sqlite+aiosqlite://..., postgresql+asyncpg://...)
        **engine_options: Extra create_async_engine options (e.g. poolclass)

    Returns:
        AsyncEngine; SQLite engines get WAL pragmas on every new connection
    """
    options: Dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        options["connect_args"] = {
            "timeout": 30,  # 30 second timeout for lock acquisition
            "check_same_thread": False
        }
    options.update(engine_options)

    async_engine = create_async_engine(database_url, **options)

    if is_sqlite:
        event.listen(async_engine.sync_engine, "connect", _enable_sqlite_wal)

    return async_engine


async def initialize_database(target_engine: AsyncEngine = None) -> None:
    """
    Create all database tables.

    This function is called during FastAPI startup.
    """
    target_engine = target_engine or engine
    logger.info(f"Initializing database at: {target_engine.url}")

    async with target_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized successfully")


# ============================================================================
# SQLAlchemy Async Session Setup for FastAPI
# ============================================================================

engine = create_engine(settings.database_url, pool_recycle=3600)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions in FastAPI.

    Usage:
        @router.get("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


# Alias for FastAPI Depends
get_db = get_async_session


def main():
    """CLI entry point for initializing database."""
    logging.basicConfig(level=logging.INFO)
    asyncio.run(initialize_database())


if __name__ == "__main__":
    main()
