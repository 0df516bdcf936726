"""Database engine and session factory."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from catalog_cache.config import settings
from catalog_cache.db.models import Base


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy own SQLite transactions so SAVEPOINTs work.

    The sqlite3 driver otherwise issues its own BEGIN lazily, which breaks
    nested transactions.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine, applying the SQLite transaction fix where needed."""
    if database_url.startswith("sqlite"):
        new_engine = create_async_engine(database_url, echo=False, **kwargs)
        enable_sqlite_savepoints(new_engine)
        return new_engine
    return create_async_engine(database_url, echo=False, pool_pre_ping=True, **kwargs)


engine = build_engine(settings.database_url)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(target: AsyncEngine = None) -> None:
    """Create all tables that do not exist yet."""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
