"""Configuration errors raised by the admin layer.

These are programmer errors (bad bootstrap, missing widget mapping, unknown
entity reference). User-facing failures never raise; they travel as issues
and flash messages instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


Issue = Dict[str, Any]


def issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


@dataclass
class AdminConfigError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


class InterfaceNotConfigured(AdminConfigError):
    pass


class InvalidInterfaceSettings(AdminConfigError):
    pass


class WidgetNotConfigured(AdminConfigError):
    pass


class EntityUnresolvable(AdminConfigError):
    pass
