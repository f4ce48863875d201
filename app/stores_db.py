"""DB-backed entity gateways and flash store.

Every entity lives in one ``admin_records`` table as a JSONB document keyed
by ``(entity, id)``; the primary key is never stored inside ``data``.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List

from psycopg2.extras import Json

from app.db import execute, fetch_all, fetch_one, get_conn
from entity_gateway import EntityGateway, PersistResult
from flash_channel import DEFAULT_TTL_SECONDS


logger = logging.getLogger("admin.db")

SCHEMA_SQL = """
create table if not exists admin_records (
    entity text not null,
    id bigserial not null,
    data jsonb not null default '{}'::jsonb,
    created_at timestamptz not null default now(),
    updated_at timestamptz not null default now(),
    primary key (entity, id)
);
create table if not exists admin_flash (
    seq bigserial primary key,
    session_id text not null,
    scope text not null,
    kind text not null,
    message text not null,
    created_at timestamptz not null default now()
);
create index if not exists admin_flash_session_idx on admin_flash (session_id, scope, kind, seq);
create index if not exists admin_flash_created_idx on admin_flash (created_at);
"""


def ensure_schema() -> None:
    with get_conn() as conn:
        execute(conn, SCHEMA_SQL, query_name="admin.ensure_schema")
    logger.info("db_schema_ready tables=admin_records,admin_flash")


def _is_safe_field_id(value: str) -> bool:
    if not value or not isinstance(value, str):
        return False
    for ch in value:
        if not (ch.isalnum() or ch in "._-"):
            return False
    return True


def _coerce_id(record_id: Any) -> int | None:
    if isinstance(record_id, bool):
        return None
    if isinstance(record_id, int):
        return record_id
    if isinstance(record_id, str) and record_id.strip().isdigit():
        return int(record_id.strip())
    return None


class DbEntityGateway(EntityGateway):
    def __init__(self, table_name: str, primary_key: str = "ID") -> None:
        self.table_name = table_name
        self.primary_key = primary_key

    def _row(self, db_row: dict, select: List[str] | None = None) -> dict:
        data = copy.deepcopy(db_row.get("data") or {})
        if select:
            data = {code: data.get(code) for code in select if code in data}
        data[self.primary_key] = db_row.get("id")
        return data

    def _where(self, flt: Dict[str, Any] | None) -> tuple[str, list]:
        where = "where entity=%s"
        params: list = [self.table_name]
        for key, expected in (flt or {}).items():
            code = key[1:] if key.startswith("%") else key
            if not _is_safe_field_id(code):
                continue
            if code == self.primary_key:
                where += " and id::text = %s"
                params.append(str(expected))
            elif key.startswith("%"):
                where += " and (data ->> %s) ilike %s"
                params.extend([code, f"%{expected}%"])
            elif isinstance(expected, (list, tuple, set)):
                where += " and (data ->> %s) = any(%s)"
                params.extend([code, [str(v) for v in expected]])
            else:
                where += " and (data ->> %s) = %s"
                params.extend([code, str(expected)])
        return where, params

    def get_by_id(self, record_id: Any, select: List[str] | None = None) -> dict | None:
        key = _coerce_id(record_id)
        if key is None:
            return None
        with get_conn() as conn:
            row = fetch_one(
                conn,
                "select id, data from admin_records where entity=%s and id=%s",
                [self.table_name, key],
                query_name="admin_records.get",
            )
        return self._row(row, select) if row else None

    def add(self, row: dict) -> PersistResult:
        data = {k: v for k, v in row.items() if k != self.primary_key}
        with get_conn() as conn:
            created = fetch_one(
                conn,
                "insert into admin_records (entity, data) values (%s, %s) returning id",
                [self.table_name, Json(data)],
                query_name="admin_records.insert",
            )
        return PersistResult.ok(created["id"])

    def update(self, record_id: Any, row: dict) -> PersistResult:
        key = _coerce_id(record_id)
        if key is None:
            return PersistResult.failed(f"Element #{record_id} not found")
        data = {k: v for k, v in row.items() if k != self.primary_key}
        with get_conn() as conn:
            count = execute(
                conn,
                "update admin_records set data = data || %s::jsonb, updated_at = now() where entity=%s and id=%s",
                [Json(data), self.table_name, key],
                query_name="admin_records.update",
            )
        if not count:
            return PersistResult.failed(f"Element #{record_id} not found")
        return PersistResult.ok(key)

    def delete(self, record_id: Any) -> PersistResult:
        key = _coerce_id(record_id)
        if key is None:
            return PersistResult.failed(f"Element #{record_id} not found")
        with get_conn() as conn:
            count = execute(
                conn,
                "delete from admin_records where entity=%s and id=%s",
                [self.table_name, key],
                query_name="admin_records.delete",
            )
        if not count:
            return PersistResult.failed(f"Element #{record_id} not found")
        return PersistResult.ok(key)

    def get_list(
        self,
        select: List[str] | None = None,
        filter: Dict[str, Any] | None = None,
        order: Dict[str, str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> List[dict]:
        where, params = self._where(filter)
        order_parts = []
        for code, direction in (order or {}).items():
            if not _is_safe_field_id(code):
                continue
            sql_dir = "desc" if str(direction).lower() == "desc" else "asc"
            if code == self.primary_key:
                order_parts.append(f"id {sql_dir}")
            else:
                order_parts.append(f"data -> %s {sql_dir}")
                params.append(code)
        order_sql = "order by " + ", ".join(order_parts + ["id asc"])
        sql = f"select id, data from admin_records {where} {order_sql}"
        if limit is not None:
            sql += " limit %s"
            params.append(limit)
        if offset:
            sql += " offset %s"
            params.append(offset)
        with get_conn() as conn:
            rows = fetch_all(conn, sql, params, query_name="admin_records.list")
        return [self._row(r, select) for r in rows]

    def count(self, filter: Dict[str, Any] | None = None) -> int:
        where, params = self._where(filter)
        with get_conn() as conn:
            row = fetch_one(conn, f"select count(*) as total from admin_records {where}", params, query_name="admin_records.count")
        return int(row["total"]) if row else 0


class DbFlashStore:
    """Flash buffers in ``admin_flash``; ``take`` deletes and returns in one statement."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        self.ttl_seconds = ttl_seconds

    def append(self, session_id: str, scope: str, kind: str, messages: List[str]) -> None:
        if not messages:
            return
        with get_conn() as conn:
            expired = execute(
                conn,
                "delete from admin_flash where created_at < now() - make_interval(secs => %s)",
                [float(self.ttl_seconds)],
                query_name="admin_flash.expire",
            )
            if expired:
                logger.info("flash_expired rows=%s", expired)
            for message in messages:
                execute(
                    conn,
                    "insert into admin_flash (session_id, scope, kind, message) values (%s, %s, %s, %s)",
                    [session_id, scope, kind, message],
                    query_name="admin_flash.insert",
                )

    def peek(self, session_id: str, scope: str, kind: str) -> List[str]:
        with get_conn() as conn:
            rows = fetch_all(
                conn,
                "select message from admin_flash where session_id=%s and scope=%s and kind=%s order by seq",
                [session_id, scope, kind],
                query_name="admin_flash.peek",
            )
        return [r["message"] for r in rows]

    def take(self, session_id: str, scope: str, kind: str) -> List[str]:
        with get_conn() as conn:
            rows = fetch_all(
                conn,
                "delete from admin_flash where session_id=%s and scope=%s and kind=%s returning seq, message",
                [session_id, scope, kind],
                query_name="admin_flash.take",
            )
        return [r["message"] for r in sorted(rows, key=lambda r: r["seq"])]

    def clear_session(self, session_id: str) -> None:
        with get_conn() as conn:
            execute(conn, "delete from admin_flash where session_id=%s", [session_id], query_name="admin_flash.clear")
