# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Database connection management for Verdict.

Config via VERDICT_DB_* environment variables (see core.config).
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from psycopg2 import pool as psycopg2_pool
from psycopg2.extras import RealDictCursor
from psycopg2.pool import PoolError

from .exceptions import DatabaseException

SCHEMA_PATH = Path(__file__).parent.parent / "schema.sql"

# Connection pool (lazy init, thread-safe)
_pool: psycopg2_pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def _get_pool() -> psycopg2_pool.ThreadedConnectionPool:
    """Get or create the connection pool."""
    from .config import get_config

    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                config = get_config()
                _pool = psycopg2_pool.ThreadedConnectionPool(**config.pool_config, **config.connection_params)
    return _pool


def _get_conn_with_timeout(pool: psycopg2_pool.ThreadedConnectionPool, timeout: int) -> Any:
    """Get a connection from pool, giving up after ``timeout`` seconds.

    Raises:
        PoolError: If timeout expires before connection is available
    """
    result_queue: queue.Queue = queue.Queue()

    def _get_conn():
        try:
            result_queue.put(("success", pool.getconn()))
        except Exception as e:
            result_queue.put(("error", e))

    thread = threading.Thread(target=_get_conn, daemon=True)
    thread.start()

    try:
        result_type, result_value = result_queue.get(timeout=timeout)
    except queue.Empty:
        raise PoolError(f"Connection pool timeout after {timeout} seconds") from None
    if result_type == "error":
        raise result_value
    return result_value


def _validate_connection(conn: Any) -> bool:
    """Check if a connection is open and answers a trivial query."""
    if conn.closed:
        return False
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()
        return True
    except Exception:
        return False


def _get_healthy_connection(pool: psycopg2_pool.ThreadedConnectionPool, timeout: int) -> Any:
    """Get a validated connection, discarding stale ones.

    Raises:
        PoolError: If no healthy connection is obtained after three tries
    """
    max_attempts = 3
    for _ in range(max_attempts):
        conn = _get_conn_with_timeout(pool, timeout)
        if _validate_connection(conn):
            return conn
        pool.putconn(conn, close=True)
    raise PoolError("Failed to get healthy connection after multiple attempts")


@contextmanager
def get_cursor() -> Generator[Any, None, None]:
    """Get a dict cursor that commits on success and rolls back on error.

    Usage:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM claims WHERE id = %s", (claim_id,))
            row = cur.fetchone()
    """
    from .config import get_config

    pool = _get_pool()
    conn = _get_healthy_connection(pool, get_config().db_pool_timeout)
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


@contextmanager
def get_connection() -> Generator[Any, None, None]:
    """Get a raw pooled connection, for schema setup and other DDL."""
    from .config import get_config

    pool = _get_pool()
    conn = _get_healthy_connection(pool, get_config().db_pool_timeout)
    try:
        yield conn
    finally:
        pool.putconn(conn)


def close_pool() -> None:
    """Close the connection pool."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None


def init_schema(schema_path: str | Path | None = None) -> None:
    """Create tables from schema.sql (idempotent: every statement uses IF NOT EXISTS).

    Raises:
        DatabaseException: If the schema file is missing.
    """
    path = Path(schema_path) if schema_path else SCHEMA_PATH
    if not path.exists():
        raise DatabaseException(f"schema.sql not found at {path}")

    schema_sql = path.read_text()
    with get_connection() as conn:
        conn.autocommit = True
        with conn.cursor() as cur:
            cur.execute(schema_sql)


def check_connection() -> bool:
    """Check if database connection is working."""
    try:
        with get_cursor() as cur:
            cur.execute("SELECT 1")
        return True
    except Exception:
        return False

