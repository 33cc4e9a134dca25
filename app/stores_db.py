"""DB-backed config store and session gate."""

from __future__ import annotations

import logging
import os
import re
import uuid
from typing import Any

import psycopg2

from wfconfig.errors import NotFound, StorageError
from wfconfig.field_kinds import EDITABLE_FIELDS, IDENTIFIER_FIELD, FieldKind, kind_of, schema_drift
from wfconfig.json_text import dumps_for_storage

from app.config_validation import require_update_payload
from app.db import execute, fetch_all, fetch_one, get_conn

logger = logging.getLogger("wfconfig.configs")

DEFAULT_CONFIG_TABLE = "public.workflow_config"
_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")
_SQL_CASTS = {
    FieldKind.JSON: "::jsonb",
    FieldKind.NUMERIC: "::numeric",
    FieldKind.INTEGER: "::integer",
}


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
        return True
    except ValueError:
        return False


def _safe_table(table: str) -> str:
    if not isinstance(table, str) or not _TABLE_RE.match(table):
        raise ValueError(f"Invalid config table name: {table!r}")
    return table


def _storage_error(action: str, exc: Exception) -> StorageError:
    diag = getattr(exc, "diag", None)
    detail = getattr(diag, "message_primary", None) if diag else None
    constraint = getattr(diag, "constraint_name", None) if diag else None
    message = f"{action} failed: {detail or str(exc).strip() or type(exc).__name__}"
    if constraint:
        message += f" (constraint {constraint})"
    return StorageError(message)


def build_update_sql(table: str) -> str:
    """One statement rewriting every editable column of one row."""
    assignments = []
    for field in EDITABLE_FIELDS:
        cast = _SQL_CASTS.get(kind_of(field), "")
        assignments.append(f"{field} = %s{cast}")
    set_sql = ",\n  ".join(assignments)
    return f"update {_safe_table(table)}\nset\n  {set_sql}\nwhere {IDENTIFIER_FIELD} = %s::bigint"


def build_update_params(record_id: int, payload: dict) -> list[Any]:
    params: list[Any] = []
    for field in EDITABLE_FIELDS:
        value = payload[field]
        if kind_of(field) is FieldKind.JSON:
            value = dumps_for_storage(value)
        params.append(value)
    params.append(record_id)
    return params


class DbConfigStore:
    def __init__(self, table: str | None = None) -> None:
        self._table = _safe_table(table or os.getenv("WFCONFIG_CONFIG_TABLE", DEFAULT_CONFIG_TABLE))
        self._update_sql = build_update_sql(self._table)

    @property
    def table(self) -> str:
        return self._table

    def list_records(self) -> list[dict]:
        try:
            with get_conn() as conn:
                return fetch_all(
                    conn,
                    f"select * from {self._table} order by {IDENTIFIER_FIELD}",
                    query_name="workflow_config.list",
                )
        except psycopg2.Error as exc:
            raise _storage_error("List configs", exc) from exc

    def get_record(self, record_id: int) -> dict | None:
        try:
            with get_conn() as conn:
                return fetch_one(
                    conn,
                    f"select * from {self._table} where {IDENTIFIER_FIELD} = %s::bigint",
                    [record_id],
                    query_name="workflow_config.get",
                )
        except psycopg2.Error as exc:
            raise _storage_error("Load config", exc) from exc

    def update_record(self, record_id: int, payload: dict) -> None:
        require_update_payload(payload)
        params = build_update_params(record_id, payload)
        try:
            with get_conn() as conn:
                rowcount = execute(conn, self._update_sql, params, query_name="workflow_config.update")
        except psycopg2.Error as exc:
            raise _storage_error("Update config", exc) from exc
        if rowcount == 0:
            raise NotFound(record_id)

    def verify_schema(self, strict: bool = False) -> tuple[list[str], list[str]]:
        schema, _, name = self._table.rpartition(".")
        try:
            with get_conn() as conn:
                rows = fetch_all(
                    conn,
                    """
                    select column_name
                    from information_schema.columns
                    where table_schema = %s and table_name = %s
                    """,
                    [schema or "public", name],
                    query_name="workflow_config.columns",
                )
        except psycopg2.Error as exc:
            raise _storage_error("Inspect config table", exc) from exc
        missing, unknown = schema_drift(row["column_name"] for row in rows)
        if missing or unknown:
            logger.error("config_schema_drift table=%s missing=%s unknown=%s", self._table, missing, unknown)
            if strict:
                raise StorageError(f"Config table {self._table} does not match the field registry")
        return missing, unknown


def _session_user(row: dict) -> dict:
    return {"user_id": row.get("user_id"), "username": row.get("username"), "role": row.get("role")}


class DbSessionGate:
    """Delegates to the app_security stored procedures."""

    def login(self, username: str | None, password: str | None) -> dict | None:
        if not isinstance(username, str) or not isinstance(password, str):
            return None
        try:
            with get_conn() as conn:
                row = fetch_one(
                    conn,
                    "select * from app_security.login(%s, %s)",
                    [username, password],
                    query_name="app_security.login",
                    secret=True,
                )
        except psycopg2.Error as exc:
            raise _storage_error("Login", exc) from exc
        if not row or not row.get("ok"):
            return None
        return {"session_token": str(row.get("session_token")), **_session_user(row)}

    def authenticate(self, token: str | None) -> dict | None:
        if not token or not _is_uuid(token):
            return None
        try:
            with get_conn() as conn:
                row = fetch_one(
                    conn,
                    "select * from app_security.is_session_valid(%s::uuid)",
                    [token],
                    query_name="app_security.is_session_valid",
                    secret=True,
                )
        except psycopg2.Error as exc:
            raise _storage_error("Session check", exc) from exc
        if not row or not row.get("ok"):
            return None
        return _session_user(row)

    def logout(self, token: str | None) -> None:
        if not token or not _is_uuid(token):
            return
        try:
            with get_conn() as conn:
                execute(
                    conn,
                    "select app_security.logout(%s::uuid)",
                    [token],
                    query_name="app_security.logout",
                    secret=True,
                )
        except psycopg2.Error as exc:
            raise _storage_error("Logout", exc) from exc
