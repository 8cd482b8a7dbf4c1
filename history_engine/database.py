"""
Database engine and per-request sessions for the progress store and audit log.

Every request gets one AsyncSession. Engines that change a learner's record
commit it through SqlBackend.commit() before the record lock is released;
get_db commits what is written after that (audit entries logged outside the
lock) and rolls back on error.
"""

from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from history_engine.config import get_settings
from history_engine.logging_config import get_logger

settings = get_settings()
logger = get_logger(__name__)

is_sqlite = settings.database_url.startswith("sqlite")


def _build_engine() -> AsyncEngine:
    if not is_sqlite:
        return create_async_engine(
            settings.database_url,
            echo=settings.debug,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )

    # A connection per session: a quiz transaction keeps its connection until commit
    sqlite_engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )

    @event.listens_for(sqlite_engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        # WAL: progress and timeline reads proceed while a quiz transaction writes
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={int(settings.sqlite_busy_timeout_ms)}")
        cursor.close()

    return sqlite_engine


engine = _build_engine()

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def ping(session: AsyncSession) -> bool:
    """True when the store answers a trivial query."""
    try:
        await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database ping failed", extra={"error": str(e)})
        await session.rollback()
        return False
    return True


async def init_db() -> None:
    """Create the storage_entries and event_logs tables when missing."""
    from history_engine.kernel.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
