"""Async engine, session scope and schema setup for the summary store."""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.config.settings import settings

# Registers every table on Base.metadata before create_all runs.
from app.models import Base

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def resolve_schema(raw_schema: str | None) -> str | None:
    """Configured schema name, or ``None`` for the default search_path."""

    schema = (raw_schema or "").strip()
    if not schema:
        return None
    if not _IDENTIFIER.fullmatch(schema):
        logger.warning("Ignoring invalid DB_SCHEMA %r; using the default search_path", raw_schema)
        return None
    return schema


SCHEMA = resolve_schema(settings.database.schema_name)

if SCHEMA:
    for table in Base.metadata.tables.values():
        if table.schema is None:
            table.schema = SCHEMA


def _create_engine() -> AsyncEngine:
    options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if settings.database.serverless or settings.debug:
        # Serverless Postgres pauses only when no pooled connection is held.
        options["poolclass"] = NullPool
    return create_async_engine(settings.database.url, **options)


engine: AsyncEngine = _create_engine()

SessionFactory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def _set_search_path(target: Any) -> None:
    if SCHEMA:
        await target.execute(text(f'SET search_path TO "{SCHEMA}", public'))


@asynccontextmanager
async def session_scope(factory=SessionFactory) -> AsyncIterator[AsyncSession]:
    """One unit of work: commit when the block succeeds, roll back otherwise."""

    async with factory() as session:
        await _set_search_path(session)
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_models() -> None:
    """Create the schema (when configured) and any missing tables."""

    async with engine.begin() as conn:
        if SCHEMA:
            await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{SCHEMA}"'))
        await _set_search_path(conn)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready in schema %s", SCHEMA or "public")


async def dispose_engine() -> None:
    await engine.dispose()


__all__ = [
    "SCHEMA",
    "SessionFactory",
    "dispose_engine",
    "engine",
    "init_models",
    "resolve_schema",
    "session_scope",
]
