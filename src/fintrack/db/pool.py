"""Connection pool for the managed Postgres database."""

import asyncio
import logging
from typing import Any, Optional

import asyncpg

from fintrack.config import AppConfig, get_config

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 5.0

_pool: Optional[asyncpg.Pool] = None


def pool_options(config: AppConfig) -> dict[str, Any]:
    """
    Keyword arguments for ``asyncpg.create_pool``.

    Supabase fronts its database with a transaction-mode pooler that
    cannot keep per-connection prepared statements, so the statement
    cache is off. Queries share the outbound HTTP timeout.
    """
    return {
        "dsn": str(config.db_dsn),
        "min_size": config.db_pool_min,
        "max_size": config.db_pool_max,
        "statement_cache_size": 0,
        "command_timeout": config.http_timeout_seconds,
    }


async def _ping(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        result = await conn.fetchval("SELECT 1")
    if result != 1:
        raise RuntimeError(f"expected 1, got {result}")


async def get_pool() -> asyncpg.Pool:
    """
    Return the process-wide pool, opening and pinging it on first use.

    Raises:
        asyncio.TimeoutError: If the database cannot be reached in time
        RuntimeError: If the database does not answer a ping
    """
    global _pool

    if _pool is not None:
        return _pool

    config = get_config()
    try:
        pool = await asyncio.wait_for(
            asyncpg.create_pool(**pool_options(config)),
            timeout=CONNECT_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        raise asyncio.TimeoutError(
            f"No database connection within {CONNECT_TIMEOUT_SECONDS:.0f}s; check DB_DSN"
        )

    try:
        await _ping(pool)
    except (OSError, asyncpg.PostgresError, RuntimeError) as e:
        await pool.close()
        raise RuntimeError(f"Database unavailable: {e}") from e

    logger.info(f"Database pool ready ({config.env}, size {config.db_pool_min}-{config.db_pool_max})")
    _pool = pool
    return _pool


async def close_pool() -> None:
    """Close the pool; connections still checked out are terminated."""
    global _pool
    pool, _pool = _pool, None
    if pool is None:
        return

    try:
        await asyncio.wait_for(pool.close(), timeout=CONNECT_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Pool close timed out, terminating open connections")
        pool.terminate()
