"""DB helper for the Postgres-backed admin stores."""

from __future__ import annotations

import contextvars
import logging
import os
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterable

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool


def get_db_url() -> str:
    url = os.getenv("SUPABASE_DB_URL") or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("SUPABASE_DB_URL or DATABASE_URL is required when USE_DB=1")
    return url


_POOL: SimpleConnectionPool | None = None
_POOL_LOCK = threading.Lock()
_DB_MS: contextvars.ContextVar[float] = contextvars.ContextVar("admin_db_ms", default=0.0)
_DB_QUERIES: contextvars.ContextVar[int] = contextvars.ContextVar("admin_db_queries", default=0)
_logger = logging.getLogger("admin.db")
_SLOW_MS = float(os.getenv("ADMIN_QUERY_SLOW_MS", "200"))


def _redact_params(params: Iterable[Any] | None) -> list[Any] | None:
    if params is None:
        return None
    redacted: list[Any] = []
    for val in params:
        if isinstance(val, (bytes, bytearray)):
            redacted.append(f"<bytes:{len(val)}>")
        elif isinstance(val, str) and len(val) > 80:
            redacted.append(f"{val[:40]}…{val[-10:]}")
        else:
            redacted.append(val)
    return redacted


def _record(query_name: str | None, params: Iterable[Any] | None, elapsed_ms: float, rowcount: int | None) -> None:
    _DB_MS.set(_DB_MS.get() + elapsed_ms)
    _DB_QUERIES.set(_DB_QUERIES.get() + 1)
    if elapsed_ms >= _SLOW_MS:
        _logger.warning(
            "db_slow_query query=%s ms=%.2f rowcount=%s params=%s",
            query_name or "unnamed",
            elapsed_ms,
            rowcount,
            _redact_params(params),
        )
    else:
        _logger.debug("db_query query=%s ms=%.2f rowcount=%s", query_name or "unnamed", elapsed_ms, rowcount)


def init_pool(minconn: int | None = None, maxconn: int | None = None) -> None:
    global _POOL
    with _POOL_LOCK:
        if _POOL is None:
            if minconn is None:
                minconn = int(os.getenv("ADMIN_DB_POOL_MIN", "1"))
            if maxconn is None:
                maxconn = int(os.getenv("ADMIN_DB_POOL_MAX", "10"))
            _POOL = SimpleConnectionPool(minconn, maxconn, dsn=get_db_url())
            _logger.info("db_pool_ready min=%s max=%s", minconn, maxconn)


def _get_pool() -> SimpleConnectionPool:
    if _POOL is None:
        init_pool()
    return _POOL


def reset_db_ms() -> None:
    _DB_MS.set(0.0)
    _DB_QUERIES.set(0)


def get_db_ms() -> float:
    return _DB_MS.get()


def get_db_queries() -> int:
    return _DB_QUERIES.get()


@contextmanager
def get_conn():
    pool = _get_pool()
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


def fetch_one(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> dict | None:
    start = time.perf_counter()
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params or [])
        row = cur.fetchone()
        result = dict(row) if row else None
        rowcount = cur.rowcount
    _record(query_name, params, (time.perf_counter() - start) * 1000, rowcount)
    return result


def fetch_all(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> list[dict]:
    start = time.perf_counter()
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params or [])
        result = [dict(r) for r in cur.fetchall()]
        rowcount = cur.rowcount
    _record(query_name, params, (time.perf_counter() - start) * 1000, rowcount)
    return result


def execute(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> int:
    start = time.perf_counter()
    with conn.cursor() as cur:
        cur.execute(sql, params or [])
        rowcount = cur.rowcount
    _record(query_name, params, (time.perf_counter() - start) * 1000, rowcount)
    return rowcount
