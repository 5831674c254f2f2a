# =============================================================================
# File: chatcore/infra/persistence/pg_client.py
# =============================================================================
# AsyncPG pool lifecycle, scoped transactions, schema runner and health check.
#
# The pool is created once per process at startup and handed explicitly to
# the Registry; data-access code never reaches for it through this module.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import pathlib
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Any, AsyncIterator

import asyncpg
from asyncpg.exceptions import PostgresError, InterfaceError

from chatcore.common.exceptions.exceptions import InfrastructureError, CommitFailedError
from chatcore.config.pg_client_config import get_postgres_config, PostgresConfig

log = logging.getLogger("chatcore.infra.pg_client")

# Errors raised by the driver or the socket underneath it
DRIVER_ERRORS = (PostgresError, InterfaceError, OSError)

_POOL: Optional[asyncpg.Pool] = None
_POOL_LOCK = asyncio.Lock()


# =============================================================================
# Pool Management
# =============================================================================

async def _init_connection(conn: asyncpg.Connection) -> None:
    """Initialize connection with JSONB codec for automatic dict<->JSONB conversion"""
    await conn.set_type_codec(
        'jsonb',
        encoder=json.dumps,
        decoder=json.loads,
        schema='pg_catalog'
    )


async def init_db_pool(
        dsn: Optional[str] = None,
        config: Optional[PostgresConfig] = None,
        **pool_kwargs: Any
) -> asyncpg.Pool:
    """Initialize the process-wide asyncpg pool. Idempotent."""
    global _POOL

    config = config or get_postgres_config()

    async with _POOL_LOCK:
        if _POOL is not None and not _POOL.is_closing():
            return _POOL

        dsn = dsn or config.main_dsn
        if not dsn:
            raise RuntimeError("POSTGRES_DSN is not set. Please define it in your environment or .env file.")

        params = config.main_pool.to_asyncpg_params()
        params.update({"init": _init_connection, **pool_kwargs})

        log.info(f"Initializing PostgreSQL pool (hidden DSN): {dsn.split('@')[-1]}")

        try:
            pool = await asyncpg.create_pool(dsn=dsn, **params)
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except Exception as e:
            log.critical(f"Failed to init PostgreSQL pool: {e}", exc_info=True)
            raise RuntimeError(f"PostgreSQL pool init error: {e}") from e

        _POOL = pool
        log.info(f"PostgreSQL pool initialized. Min/Max size: {params['min_size']}/{params['max_size']}")

    return _POOL


async def close_db_pool() -> None:
    """Close the pool gracefully."""
    global _POOL

    async with _POOL_LOCK:
        pool, _POOL = _POOL, None

    if pool is None:
        return

    try:
        await asyncio.wait_for(pool.close(), timeout=10.0)
        log.info("PostgreSQL pool closed")
    except asyncio.TimeoutError:
        log.warning("PostgreSQL pool did not close in time, terminating connections")
        pool.terminate()


# =============================================================================
# Scoped Transaction
# =============================================================================

async def _rollback(tx: Any) -> None:
    """Roll back, logging (not raising) a failed rollback so the original error wins."""
    try:
        await tx.rollback()
    except DRIVER_ERRORS as rb_err:
        log.error(f"Rollback failed: {rb_err}")


@asynccontextmanager
async def transaction(
        pool: asyncpg.Pool,
        *,
        acquire_timeout: Optional[float] = None,
        config: Optional[PostgresConfig] = None,
) -> AsyncIterator[asyncpg.Connection]:
    """
    Acquire a connection and run one transaction on it.

    Every exit path ends in exactly one of commit or rollback:
    - the body raises anything (including CancelledError) -> rollback, re-raise
    - the body completes -> commit; a failed commit raises CommitFailedError
    The connection always goes back to the pool.

    Usage:
        async with transaction(pool) as conn:
            await conn.execute("INSERT INTO ...")
    """
    config = config or get_postgres_config()
    acquire_start = time.monotonic()

    try:
        conn = await pool.acquire(timeout=acquire_timeout)
    except (asyncio.TimeoutError, *DRIVER_ERRORS) as e:
        log.error(f"Connection acquisition failed: {e}")
        raise InfrastructureError(f"can't acquire database connection: {e}") from e

    acquire_ms = (time.monotonic() - acquire_start) * 1000
    if acquire_ms > config.slow_acquire_threshold_ms:
        log.warning(
            f"[SLOW POOL ACQUIRE] took {acquire_ms:.0f}ms to get connection "
            f"(threshold: {config.slow_acquire_threshold_ms:.0f}ms)"
        )

    try:
        tx = conn.transaction()
        try:
            await tx.start()
        except DRIVER_ERRORS as e:
            raise InfrastructureError(f"can't begin transaction: {e}") from e

        tx_start = time.monotonic()
        try:
            yield conn
        except BaseException:
            await _rollback(tx)
            raise

        try:
            await tx.commit()
        except DRIVER_ERRORS as e:
            log.error(f"Transaction commit failed: {e}")
            raise CommitFailedError(f"transaction commit failed: {e}") from e

        tx_ms = (time.monotonic() - tx_start) * 1000
        if tx_ms > config.long_transaction_threshold_ms:
            log.warning(
                f"[LONG TRANSACTION] transaction took {tx_ms:.0f}ms "
                f"(threshold: {config.long_transaction_threshold_ms:.0f}ms)"
            )
    finally:
        await pool.release(conn)


# =============================================================================
# Schema
# =============================================================================

async def run_schema_from_file(pool: asyncpg.Pool, file_path_str: str) -> None:
    """Execute idempotent DDL statements from a SQL file."""
    path = pathlib.Path(file_path_str)
    if not path.is_file():
        raise FileNotFoundError(f"Schema file not found: {file_path_str}")

    sql = path.read_text(encoding="utf-8").strip()
    if not sql:
        log.warning(f"Schema file {file_path_str} is empty")
        return

    try:
        async with pool.acquire() as conn:
            await conn.execute(sql)
    except DRIVER_ERRORS as e:
        log.error(f"Schema execution failed: {e}", exc_info=True)
        raise

    log.info(f"Schema from {file_path_str} applied successfully")


# =============================================================================
# Health and Diagnostics
# =============================================================================

async def health_check(pool: Optional[asyncpg.Pool] = None) -> dict:
    """
    Perform PostgreSQL health check to ensure the connection is working properly.

    Returns:
        dict: Health status including pool info and latency
    """
    pool = pool or _POOL
    config = get_postgres_config()
    start_time = time.monotonic()
    health_status = {
        "is_healthy": False,
        "latency_ms": 0,
        "details": {},
        "pool_info": {},
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

    if pool is None:
        health_status["details"] = {
            "status": "error",
            "message": "PostgreSQL connection pool not initialized"
        }
        return health_status

    health_status["pool_info"] = {
        "size": pool.get_size(),
        "idle": pool.get_idle_size(),
        "min_size": pool.get_min_size(),
        "max_size": pool.get_max_size(),
    }

    try:
        async with pool.acquire(timeout=config.health_check_timeout) as conn:
            await conn.execute(config.health_check_query)
            pg_version = await conn.fetchval("SHOW server_version")
        latency_ms = int((time.monotonic() - start_time) * 1000)
        health_status.update({
            "is_healthy": True,
            "latency_ms": latency_ms,
            "details": {
                "status": "ok",
                "message": f"PostgreSQL connection successful in {latency_ms}ms",
                "pg_version": pg_version,
            }
        })
    except (asyncio.TimeoutError, *DRIVER_ERRORS) as e:
        health_status.update({
            "latency_ms": int((time.monotonic() - start_time) * 1000),
            "details": {
                "status": "error",
                "message": f"PostgreSQL connection failed: {e}",
                "error_type": type(e).__name__
            }
        })
        log.error(f"Error during PostgreSQL health check: {e}")

    return health_status
