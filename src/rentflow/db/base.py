"""Database connection and session management."""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from rentflow.config import settings
from rentflow.observability.metrics import metrics


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


def is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def engine_options(database_url: str) -> dict[str, Any]:
    """Pool options per backend; SQLite does not take a sized pool."""
    if is_sqlite(database_url):
        return {"echo": settings.debug}
    return {
        "echo": settings.debug,
        "pool_pre_ping": True,
        "pool_size": 20,
        "max_overflow": 10,
    }


def enable_sqlite_savepoints(target_engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy emit BEGIN itself on SQLite connections.

    The sqlite3 driver otherwise manages transactions on its own and
    begin_nested() savepoints do not roll back independently.
    """
    sync_engine = target_engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sync_engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def attach_query_metrics(target_engine: AsyncEngine) -> None:
    """Count statements and record their latency in db.query.* metrics."""
    sync_engine = target_engine.sync_engine
    if getattr(sync_engine, "_rentflow_metrics_attached", False):
        return

    @event.listens_for(sync_engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info["query_start_time"] = time.perf_counter()

    @event.listens_for(sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start_time = conn.info.pop("query_start_time", None)
        if start_time is not None:
            metrics.inc_counter("db.query.count")
            metrics.observe("db.query.duration_ms", (time.perf_counter() - start_time) * 1000.0)

    @event.listens_for(sync_engine, "rollback")
    def on_rollback(conn):
        metrics.inc_counter("db.rollbacks")

    sync_engine._rentflow_metrics_attached = True


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine with metrics (and SQLite savepoint support)."""
    new_engine = create_async_engine(database_url, **engine_options(database_url))
    if is_sqlite(database_url):
        enable_sqlite_savepoints(new_engine)
    attach_query_metrics(new_engine)
    return new_engine


engine = build_engine(settings.database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db() -> None:
    """Create missing tables (PostgreSQL deployments use alembic migrations)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session scope: commit on success, roll back and re-raise on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
