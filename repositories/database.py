# ============================================================================
# DATABASE CONNECTION POOL
# ============================================================================
# EPOCH: 1 - LOOP ORCHESTRATION CORE
# STATUS: Repository - Async PostgreSQL connection management
# PURPOSE: Connection pooling for psycopg3 async, schema DDL
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Database Connection Pool

Manages async PostgreSQL connections using psycopg3 and psycopg_pool.
One pool per process.

Connection settings come from DATABASE_URL, or from the individual
POSTGRES_* variables when it is unset.

Usage:
    from repositories.database import get_pool

    pool = await get_pool()
    async with pool.connection() as conn:
        await conn.execute("SELECT 1")
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from psycopg import sql as psycopg_sql
from psycopg_pool import AsyncConnectionPool

from core.config import get_defaults

logger = logging.getLogger(__name__)

_pool: Optional[AsyncConnectionPool] = None


def get_connection_string() -> str:
    """
    Get database connection string from environment.

    Priority:
    1. DATABASE_URL
    2. Individual POSTGRES_* components
    """
    if url := os.environ.get("DATABASE_URL"):
        return url

    host = os.environ.get("POSTGRES_HOST", "localhost")
    port = os.environ.get("POSTGRES_PORT", "5432")
    name = os.environ.get("POSTGRES_DB", "postgres")
    user = os.environ.get("POSTGRES_USER", "postgres")
    password = os.environ.get("POSTGRES_PASSWORD", "")
    sslmode = os.environ.get("POSTGRES_SSLMODE", "prefer")

    return f"postgresql://{user}:{password}@{host}:{port}/{name}?sslmode={sslmode}"


def _safe_conninfo(conninfo: str) -> str:
    """Connection info with credentials stripped for logging."""
    if "@" in conninfo:
        return conninfo.split("@")[-1]
    if "password=" in conninfo:
        return conninfo.split("password=")[0] + "password=***"
    return conninfo


async def init_pool(
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
    connection_string: Optional[str] = None,
) -> AsyncConnectionPool:
    """
    Initialize the global connection pool.

    Sizes default to DatabaseDefaults (DB_POOL_MIN / DB_POOL_MAX).
    """
    global _pool

    if _pool is not None:
        logger.warning("Pool already initialized, returning existing pool")
        return _pool

    defaults = get_defaults().database
    min_size = min_size if min_size is not None else defaults.min_pool_size
    max_size = max_size if max_size is not None else defaults.max_pool_size
    conninfo = connection_string or get_connection_string()

    logger.info(f"Initializing connection pool: {_safe_conninfo(conninfo)}")

    _pool = AsyncConnectionPool(
        conninfo=conninfo,
        min_size=min_size,
        max_size=max_size,
        open=False,
    )
    await _pool.open()
    logger.info(f"Connection pool opened (min={min_size}, max={max_size})")
    return _pool


async def get_pool() -> AsyncConnectionPool:
    """Get the global connection pool, initializing if needed."""
    if _pool is None:
        return await init_pool()
    return _pool


async def close_pool() -> None:
    """Close the global connection pool."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Connection pool closed")


@asynccontextmanager
async def get_connection():
    """
    Get a connection from the pool.

    Usage:
        async with get_connection() as conn:
            await conn.execute(...)
    """
    pool = await get_pool()
    async with pool.connection() as conn:
        yield conn


class DatabasePool:
    """
    Context manager for pool lifecycle.

    Usage:
        async with DatabasePool() as pool:
            repo = TaskInstanceRepository(pool)
    """

    def __init__(
        self,
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
        connection_string: Optional[str] = None,
    ):
        self.min_size = min_size
        self.max_size = max_size
        self.connection_string = connection_string

    async def __aenter__(self) -> AsyncConnectionPool:
        return await init_pool(
            min_size=self.min_size,
            max_size=self.max_size,
            connection_string=self.connection_string,
        )

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await close_pool()


# ============================================================================
# SCHEMA
# ============================================================================

SCHEMA = get_defaults().database.schema

# Table identifiers, for psycopg sql.SQL().format()
TABLE_TASK_INSTANCES = psycopg_sql.Identifier(SCHEMA, "task_instances")
TABLE_DAG_EVENTS = psycopg_sql.Identifier(SCHEMA, "dag_instance_events")

SCHEMA_DDL = psycopg_sql.SQL("""
CREATE SCHEMA IF NOT EXISTS {schema};

CREATE TABLE IF NOT EXISTS {tasks} (
    id              VARCHAR(64) PRIMARY KEY,
    task_id         VARCHAR(512) NOT NULL,
    dag_ins_id      VARCHAR(64) NOT NULL,
    action_name     VARCHAR(128) NOT NULL DEFAULT '',
    name            VARCHAR(256) NOT NULL DEFAULT '',
    status          VARCHAR(16) NOT NULL DEFAULT 'init',
    reason          JSONB,
    depend_on       JSONB NOT NULL DEFAULT '[]',
    params          JSONB NOT NULL DEFAULT '{{}}',
    results         JSONB,
    pre_checks      JSONB NOT NULL DEFAULT '{{}}',
    timeout_secs    INTEGER NOT NULL DEFAULT 0,
    steps           JSONB NOT NULL DEFAULT '[]',
    metadata        JSONB,
    seq             BIGSERIAL,
    created_at      TIMESTAMP NOT NULL DEFAULT now(),
    updated_at      TIMESTAMP NOT NULL DEFAULT now(),
    UNIQUE (dag_ins_id, task_id)
);

CREATE INDEX IF NOT EXISTS task_instances_run_idx ON {tasks} (dag_ins_id, seq);

CREATE TABLE IF NOT EXISTS {events} (
    event_id        BIGSERIAL PRIMARY KEY,
    dag_ins_id      VARCHAR(64) NOT NULL,
    type            VARCHAR(16) NOT NULL,
    task_id         VARCHAR(512),
    operator        VARCHAR(128),
    status          VARCHAR(16),
    name            VARCHAR(600),
    data            JSONB,
    timestamp       BIGINT NOT NULL
);

CREATE INDEX IF NOT EXISTS dag_instance_events_run_idx ON {events} (dag_ins_id, event_id);
""").format(
    schema=psycopg_sql.Identifier(SCHEMA),
    tasks=TABLE_TASK_INSTANCES,
    events=TABLE_DAG_EVENTS,
)


async def ensure_schema(pool: AsyncConnectionPool) -> None:
    """Create schema, tables and indexes if missing."""
    async with pool.connection() as conn:
        await conn.execute(SCHEMA_DDL)
    logger.info(f"Schema {SCHEMA} ready")


__all__ = [
    "get_connection_string",
    "init_pool",
    "get_pool",
    "close_pool",
    "get_connection",
    "DatabasePool",
    "SCHEMA",
    "SCHEMA_DDL",
    "TABLE_TASK_INSTANCES",
    "TABLE_DAG_EVENTS",
    "ensure_schema",
]
