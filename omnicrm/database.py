from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from typing import AsyncGenerator

from .config import settings
from .models.base import Base

def build_engine(database_url: str, echo: bool = False, **kwargs):
    """Create an async engine; SQLite needs check_same_thread disabled."""
    connect_args = {}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args = {"check_same_thread": False}
    engine = create_async_engine(database_url, connect_args=connect_args, echo=echo, **kwargs)

    if is_sqlite:
        # pysqlite transaction handling breaks SAVEPOINT; emit BEGIN ourselves
        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine

def build_sessionmaker(engine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False
    )

async_engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)

AsyncSessionLocal = build_sessionmaker(async_engine)

async def create_all(engine=None):
    """Create every table registered on Base.metadata."""
    from . import models  # noqa: F401  registers all tables
    async with (engine or async_engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency untuk menyediakan database session per request.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
