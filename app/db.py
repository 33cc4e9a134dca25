"""DB helper for the workflow_config Postgres database."""

from __future__ import annotations

import os
import time
from contextlib import contextmanager
import contextvars
from typing import Any, Iterable

import psycopg2
import psycopg2.extras
from psycopg2.pool import ThreadedConnectionPool
import threading
import logging


def get_db_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("Missing DATABASE_URL in environment (required when USE_DB=1)")
    return url


_POOL: ThreadedConnectionPool | None = None
_POOL_LOCK = threading.Lock()
_logger = logging.getLogger("wfconfig.db")
_query_logger = logging.getLogger("wfconfig.db.query")
_DB_STATS: contextvars.ContextVar[dict] = contextvars.ContextVar("wfconfig_db_stats", default=None)
_DB_QUERY_LOG: contextvars.ContextVar[list] = contextvars.ContextVar("wfconfig_db_query_log", default=None)
_SLOW_MS = float(os.getenv("WFCONFIG_QUERY_SLOW_MS", "200"))
_LOG_ALL = os.getenv("WFCONFIG_QUERY_LOG", "").strip() == "1"
_REDACTED = "<redacted>"


def _empty_stats() -> dict:
    return {"queries": 0, "acquire_ms": 0.0, "wire_ms": 0.0, "total_ms": 0.0}


def _redact_params(params: Iterable[Any] | None, secret: bool = False) -> list[Any] | None:
    if params is None:
        return None
    redacted: list[Any] = []
    for val in params:
        if secret:
            redacted.append(_REDACTED)
        elif isinstance(val, (bytes, bytearray)):
            redacted.append(f"<bytes:{len(val)}>")
        elif isinstance(val, str) and len(val) > 80:
            redacted.append(f"{val[:40]}…{val[-10:]}")
        else:
            redacted.append(val)
    return redacted


def _log_query(
    *,
    query_name: str | None,
    params: Iterable[Any] | None,
    elapsed_ms: float,
    rowcount: int | None,
    secret: bool = False,
) -> None:
    log = get_db_query_log()
    log.append(query_name or "unnamed")
    _DB_QUERY_LOG.set(log)
    if not query_name and not _LOG_ALL and elapsed_ms < _SLOW_MS:
        return
    message = {
        "query": query_name or "unnamed",
        "ms": round(elapsed_ms, 2),
        "rowcount": rowcount,
        "params": _redact_params(params, secret=secret),
    }
    if elapsed_ms >= _SLOW_MS:
        _query_logger.warning("db_slow_query=%s", message)
    else:
        _query_logger.info("db_query=%s", message)


def init_pool(minconn: int | None = None, maxconn: int | None = None) -> None:
    global _POOL
    with _POOL_LOCK:
        if _POOL is not None:
            return
        if minconn is None:
            minconn = int(os.getenv("WFCONFIG_DB_POOL_MIN", "1"))
        if maxconn is None:
            maxconn = int(os.getenv("WFCONFIG_DB_POOL_MAX", "10"))
        url = get_db_url()
        kwargs = {}
        sslmode = os.getenv("WFCONFIG_DB_SSLMODE", "require").strip()
        if sslmode and "sslmode" not in url:
            kwargs["sslmode"] = sslmode
        _POOL = ThreadedConnectionPool(minconn, maxconn, dsn=url, **kwargs)
        _logger.info("db_pool initialized min=%s max=%s", minconn, maxconn)


def close_pool() -> None:
    global _POOL
    with _POOL_LOCK:
        if _POOL is not None:
            _POOL.closeall()
            _POOL = None


def reset_db_stats() -> None:
    _DB_STATS.set(_empty_stats())
    _DB_QUERY_LOG.set([])


def get_db_stats() -> dict:
    stats = _DB_STATS.get()
    if not isinstance(stats, dict):
        return _empty_stats()
    return stats


def get_db_query_log() -> list:
    log = _DB_QUERY_LOG.get()
    if not isinstance(log, list):
        return []
    return log


def _add_stats(total_ms: float = 0.0, wire_ms: float = 0.0, acquire_ms: float = 0.0, query: bool = True) -> None:
    stats = dict(get_db_stats())
    stats["total_ms"] = stats.get("total_ms", 0.0) + total_ms
    stats["wire_ms"] = stats.get("wire_ms", 0.0) + wire_ms
    stats["acquire_ms"] = stats.get("acquire_ms", 0.0) + acquire_ms
    if query:
        stats["queries"] = stats.get("queries", 0) + 1
    _DB_STATS.set(stats)


def get_db_ms() -> float:
    return get_db_stats().get("total_ms", 0.0)


def _get_pool() -> ThreadedConnectionPool:
    if _POOL is None:
        init_pool()
    return _POOL


@contextmanager
def get_conn():
    pool = _get_pool()
    acquire_start = time.perf_counter()
    conn = pool.getconn()
    _add_stats(acquire_ms=(time.perf_counter() - acquire_start) * 1000, query=False)
    _logger.debug("db_conn borrowed")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)
        _logger.debug("db_conn returned")


def fetch_one(
    conn,
    sql: str,
    params: Iterable[Any] | None = None,
    query_name: str | None = None,
    secret: bool = False,
) -> dict | None:
    start = time.perf_counter()
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params or [])
        wire_ms = (time.perf_counter() - start) * 1000
        row = cur.fetchone()
        result = dict(row) if row else None
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    _add_stats(total_ms=elapsed_ms, wire_ms=wire_ms)
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount, secret=secret)
    return result


def fetch_all(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> list[dict]:
    start = time.perf_counter()
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params or [])
        wire_ms = (time.perf_counter() - start) * 1000
        rows = cur.fetchall()
        result = [dict(r) for r in rows]
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    _add_stats(total_ms=elapsed_ms, wire_ms=wire_ms)
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount)
    return result


def execute(
    conn,
    sql: str,
    params: Iterable[Any] | None = None,
    query_name: str | None = None,
    secret: bool = False,
) -> int:
    start = time.perf_counter()
    with conn.cursor() as cur:
        cur.execute(sql, params or [])
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    _add_stats(total_ms=elapsed_ms, wire_ms=elapsed_ms)
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount, secret=secret)
    return rowcount
