"""
asyncpg connection pool shared by the storage adapters.

Many workflow instances write to the database at the same time, so the pool
is created lazily exactly once (under a lock) and connections are borrowed
per operation.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg
import structlog

from payment_orchestrator.config import Settings, settings as default_settings

logger = structlog.get_logger(__name__)

_pool: asyncpg.Pool | None = None
_pool_lock = asyncio.Lock()
_settings: Settings = default_settings


def configure_database(settings: Settings) -> None:
    """Use ``settings`` for the pool created on first use."""
    global _settings
    _settings = settings


async def _init_connection(conn: asyncpg.Connection) -> None:
    # Webhook payloads and order metadata are stored as json/jsonb
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


async def create_pool(settings: Settings) -> asyncpg.Pool:
    """Create a connection pool from ``settings``."""
    logger.info(
        "creating_database_pool",
        database=settings.database_url.rsplit("@", 1)[-1],  # Hide credentials
        min_size=settings.database_pool_min_size,
        max_size=settings.database_pool_max_size,
    )

    pool = await asyncpg.create_pool(
        dsn=settings.database_url,
        min_size=settings.database_pool_min_size,
        max_size=settings.database_pool_max_size,
        command_timeout=30.0,
        init=_init_connection,
        server_settings={"application_name": settings.service_name},
    )
    if pool is None:
        raise RuntimeError("Failed to create database pool")

    logger.info("database_pool_created")
    return pool


async def get_pool() -> asyncpg.Pool:
    """Return the shared pool, creating it on first use."""
    global _pool
    if _pool is None:
        async with _pool_lock:
            if _pool is None:
                _pool = await create_pool(_settings)
    return _pool


async def close_pool() -> None:
    """Close the shared pool (called on engine shutdown)."""
    global _pool
    if _pool is not None:
        logger.info("closing_database_pool")
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


@asynccontextmanager
async def get_connection() -> AsyncIterator[asyncpg.Connection]:
    """Borrow a connection from the shared pool."""
    pool = await get_pool()
    async with pool.acquire() as connection:
        yield connection


@asynccontextmanager
async def transaction(isolation: str = "read_committed") -> AsyncIterator[asyncpg.Connection]:
    """
    Borrow a connection with an open transaction.

    Commits when the block exits normally and rolls back on exception.
    """
    async with get_connection() as conn:
        async with conn.transaction(isolation=isolation):
            yield conn
