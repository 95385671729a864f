"""
Database engine and session factory.

The webhook engine has no request-scoped sessions: dispatch runs in a
background task and the operator CLI runs outside FastAPI, so both open
sessions from get_session_maker(). Works with SQLite (aiosqlite) and any
other async SQLAlchemy URL set in DATABASE_URL.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from app.db.models import Base
from app.config import settings
import logging

logger = logging.getLogger(__name__)

engine: AsyncEngine = None
async_session_maker: async_sessionmaker = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE / SET NULL unless enabled per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _create_engine(database_url: str) -> AsyncEngine:
    if not database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=False,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    sqlite_engine = create_async_engine(
        database_url,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # One shared connection; required for :memory: databases
    )
    event.listen(sqlite_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return sqlite_engine


async def init_db(database_url: str = None):
    """
    Create the engine and session factory, then create missing tables.

    Args:
        database_url: Overrides settings.database_url (CLI and tests)
    """
    global engine, async_session_maker

    database_url = database_url or settings.database_url
    logger.info(f"Initializing database: {database_url.split('://')[0]}")

    engine = _create_engine(database_url)
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("✅ Database initialized successfully")


def get_session_maker() -> async_sessionmaker:
    """
    Raises:
        RuntimeError: If init_db() has not been called
    """
    if async_session_maker is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return async_session_maker


async def close_db():
    """Dispose the engine; init_db() must be called again before further use."""
    global engine, async_session_maker
    if engine is None:
        return
    await engine.dispose()
    engine = None
    async_session_maker = None
    logger.info("Database connection closed")
