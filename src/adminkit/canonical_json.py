"""Deterministic JSON for interface settings snapshots."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any


class CanonicalJsonTypeError(TypeError):
    """Raised when a settings value has no canonical JSON form."""


def _plain(obj: Any, path: str = "$") -> Any:
    if isinstance(obj, Mapping):
        out = {}
        for key, value in obj.items():
            if not isinstance(key, str):
                raise CanonicalJsonTypeError(
                    f"Unsupported key type at {path}: {type(key).__name__}"
                )
            out[key] = _plain(value, f"{path}.{key}")
        return out
    if isinstance(obj, (list, tuple)):
        return [_plain(item, f"{path}[{idx}]") for idx, item in enumerate(obj)]
    if obj is None or isinstance(obj, (str, int, bool)):
        return obj
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValueError(f"Non-finite float at {path}: {obj!r}")
        return obj
    raise CanonicalJsonTypeError(
        f"Unsupported type at {path}: {type(obj).__name__}"
    )


def canonical_dumps(obj: Any) -> str:
    """Serialize settings to canonical JSON.

    Mappings (including read-only proxies) become objects with sorted keys,
    tuples become lists, non-ASCII text is kept and no whitespace is emitted.
    """
    return json.dumps(
        _plain(obj),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )
