from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings


def build_engine(database_url: str, *, begin_immediate: bool = False) -> AsyncEngine:
    """
    Create the async engine for a database URL.

    SQLite has no real SERIALIZABLE mode through pysqlite/aiosqlite. With
    `begin_immediate` the driver's own transaction handling is disabled and
    every transaction is opened with BEGIN IMMEDIATE, so the write lock is taken
    before the conflict check runs. Only the commit engine asks for this; the
    read engine keeps SQLite's deferred transactions and never takes the lock
    for a SELECT.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        engine = create_async_engine(database_url, echo=False, future=True)
        if begin_immediate:
            @event.listens_for(engine.sync_engine, "connect")
            def _disable_driver_transactions(dbapi_connection, connection_record):
                dbapi_connection.isolation_level = None

            @event.listens_for(engine.sync_engine, "begin")
            def _begin_immediate(conn):
                conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        pool_pre_ping=True,  # Verify connections before using them
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_size=10,  # Maximum number of connections in the pool
        max_overflow=20,  # Maximum overflow connections
    )


def build_commit_engine(database_url: str, engine: AsyncEngine) -> AsyncEngine:
    """Engine for booking commits: a BEGIN IMMEDIATE engine on SQLite, else the shared one."""
    if engine.dialect.name == "sqlite":
        return build_engine(database_url, begin_immediate=True)
    return engine


def commit_sessionmaker(engine: AsyncEngine, isolation_level: str) -> async_sessionmaker[AsyncSession]:
    """
    Session factory for the booking commit step.

    PostgreSQL connections handed out by this factory run at `isolation_level`
    (SERIALIZABLE by default). SQLite commit engines already serialize through
    BEGIN IMMEDIATE.
    """
    if engine.dialect.name == "postgresql":
        engine = engine.execution_options(isolation_level=isolation_level)
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


settings = get_settings()
engine = build_engine(settings.database_url)
commit_engine = build_commit_engine(settings.database_url, engine)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
CommitSessionLocal = commit_sessionmaker(commit_engine, settings.commit_isolation_level)


class Base(DeclarativeBase):
    pass


async def get_session() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session
