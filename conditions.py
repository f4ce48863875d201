"""Row conditions for conditional field visibility and requiredness.

A condition is a small JSON object evaluated against the element row::

    {"op": "eq", "field": "TYPE", "value": "company"}
    {"op": "and", "conditions": [{"op": "exists", "field": "ID"}, ...]}

Submitted form values arrive as strings, so ordering operators compare
numerically whenever both sides look like numbers.
"""

from __future__ import annotations

from typing import Any, Mapping


ALLOWED_OPS = {
    "eq",
    "neq",
    "gt",
    "gte",
    "lt",
    "lte",
    "in",
    "contains",
    "exists",
    "empty",
    "and",
    "or",
    "not",
}


def _row_value(row: Mapping[str, Any], ref: Any) -> Any:
    if not isinstance(ref, str) or not isinstance(row, Mapping):
        return None
    if ref.startswith("$row."):
        ref = ref[len("$row.") :]
    return row.get(ref)


def _operand(operand: Any, row: Mapping[str, Any]) -> Any:
    if isinstance(operand, dict) and "ref" in operand:
        return _row_value(row, operand.get("ref"))
    return operand


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _ordered(left: Any, right: Any) -> tuple[Any, Any] | None:
    if left is None or right is None:
        return None
    lnum, rnum = _as_number(left), _as_number(right)
    if lnum is not None and rnum is not None:
        return lnum, rnum
    if type(left) is type(right):
        return left, right
    return None


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def eval_row_condition(condition: dict | None, row: Mapping[str, Any]) -> bool:
    if not condition or not isinstance(condition, dict):
        return False
    op = condition.get("op")
    if op not in ALLOWED_OPS:
        return False

    if op == "and":
        return all(eval_row_condition(c, row) for c in condition.get("conditions") or [])
    if op == "or":
        return any(eval_row_condition(c, row) for c in condition.get("conditions") or [])
    if op == "not":
        return not eval_row_condition(condition.get("condition"), row)

    if "left" in condition or "right" in condition:
        left = _operand(condition.get("left"), row)
        right = _operand(condition.get("right"), row)
    else:
        left = _row_value(row, condition.get("field"))
        right = condition.get("value")

    if op == "exists":
        return not _is_blank(left)
    if op == "empty":
        return _is_blank(left)
    if op == "eq":
        return left == right or (left is not None and right is not None and str(left) == str(right))
    if op == "neq":
        return not (left == right or (left is not None and right is not None and str(left) == str(right)))
    if op == "in":
        return isinstance(right, list) and (left in right or str(left) in [str(r) for r in right])
    if op == "contains":
        if isinstance(left, list):
            return right in left
        if isinstance(left, str) and isinstance(right, str):
            return right in left
        return False

    pair = _ordered(left, right)
    if pair is None:
        return False
    lval, rval = pair
    if op == "gt":
        return lval > rval
    if op == "gte":
        return lval >= rval
    if op == "lt":
        return lval < rval
    if op == "lte":
        return lval <= rval
    return False
