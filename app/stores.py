"""In-memory entity gateways for tests and USE_DB=0 runs."""

from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List

from entity_gateway import EntityGateway, PersistResult
from flash_channel import MemoryFlashStore


__all__ = ["MemoryEntityGateway", "MemoryFlashStore", "matches_filter", "sort_rows"]


def _coerce_id(record_id: Any) -> int | None:
    if isinstance(record_id, bool):
        return None
    if isinstance(record_id, int):
        return record_id
    if isinstance(record_id, str) and record_id.strip().isdigit():
        return int(record_id.strip())
    return None


def _same(left: Any, right: Any) -> bool:
    if left == right:
        return True
    if left is None or right is None:
        return False
    return str(left) == str(right)


def matches_filter(row: dict, flt: Dict[str, Any] | None) -> bool:
    """``%code`` keys match case-insensitive substrings; other keys match equal values."""
    for key, expected in (flt or {}).items():
        if key.startswith("%"):
            actual = row.get(key[1:])
            if actual is None or str(expected).lower() not in str(actual).lower():
                return False
            continue
        actual = row.get(key)
        if isinstance(expected, (list, tuple, set)):
            if not any(_same(actual, item) for item in expected):
                return False
        elif not _same(actual, expected):
            return False
    return True


def _sort_key(value: Any) -> tuple:
    if value is None:
        return (0, 0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value, "")
    return (2, 0, str(value).lower())


def sort_rows(rows: List[dict], order: Dict[str, str] | None) -> List[dict]:
    # apply the least significant key first; sorted() is stable
    for code, direction in reversed(list((order or {}).items())):
        rows = sorted(rows, key=lambda r: _sort_key(r.get(code)), reverse=str(direction).lower() == "desc")
    return rows


class MemoryEntityGateway(EntityGateway):
    def __init__(self, table_name: str, primary_key: str = "ID") -> None:
        self.table_name = table_name
        self.primary_key = primary_key
        self._rows: Dict[int, dict] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def _project(self, row: dict, select: List[str] | None) -> dict:
        out = copy.deepcopy(row)
        if select:
            out = {code: out.get(code) for code in select if code in out}
            out[self.primary_key] = row.get(self.primary_key)
        return out

    def get_by_id(self, record_id: Any, select: List[str] | None = None) -> dict | None:
        key = _coerce_id(record_id)
        if key is None:
            return None
        with self._lock:
            row = self._rows.get(key)
            return self._project(row, select) if row else None

    def add(self, row: dict) -> PersistResult:
        with self._lock:
            record_id = self._next_id
            self._next_id += 1
            record = copy.deepcopy(row)
            record[self.primary_key] = record_id
            self._rows[record_id] = record
        return PersistResult.ok(record_id)

    def update(self, record_id: Any, row: dict) -> PersistResult:
        key = _coerce_id(record_id)
        with self._lock:
            record = self._rows.get(key) if key is not None else None
            if record is None:
                return PersistResult.failed(f"Element #{record_id} not found")
            record.update(copy.deepcopy(row))
            record[self.primary_key] = key
        return PersistResult.ok(key)

    def delete(self, record_id: Any) -> PersistResult:
        key = _coerce_id(record_id)
        with self._lock:
            if key is None or key not in self._rows:
                return PersistResult.failed(f"Element #{record_id} not found")
            del self._rows[key]
        return PersistResult.ok(key)

    def get_list(
        self,
        select: List[str] | None = None,
        filter: Dict[str, Any] | None = None,
        order: Dict[str, str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> List[dict]:
        with self._lock:
            rows = [r for r in self._rows.values() if matches_filter(r, filter)]
            rows = sort_rows(rows, order or {self.primary_key: "asc"})
            end = None if limit is None else offset + limit
            return [self._project(r, select) for r in rows[offset:end]]

    def count(self, filter: Dict[str, Any] | None = None) -> int:
        with self._lock:
            return sum(1 for r in self._rows.values() if matches_filter(r, filter))
