"""Sandboxed Jinja2 templates for computed admin fields.

Computed fields derive their value from sibling fields of the row, e.g.
``"{{ row.FIRST_NAME }} {{ row.LAST_NAME }}"``. Templates only see plain
row data and a short list of filters.
"""

from __future__ import annotations

from typing import Any, Mapping

from jinja2 import StrictUndefined, TemplateSyntaxError, Undefined, meta
from jinja2.sandbox import ImmutableSandboxedEnvironment

_ALLOWED_FILTERS = {
    "default",
    "lower",
    "upper",
    "title",
    "trim",
    "replace",
    "round",
    "length",
    "int",
    "float",
    "join",
}

_ALLOWED_TESTS = {
    "defined",
    "undefined",
    "none",
    "equalto",
}


class _LockedSandbox(ImmutableSandboxedEnvironment):
    def is_safe_attribute(self, obj, attr, value) -> bool:
        return False

    def is_safe_callable(self, obj) -> bool:
        return False


def _env(strict: bool) -> _LockedSandbox:
    env = _LockedSandbox(autoescape=False, undefined=StrictUndefined if strict else Undefined)
    env.globals = {}
    env.filters = {key: val for key, val in env.filters.items() if key in _ALLOWED_FILTERS}
    env.tests = {key: val for key, val in env.tests.items() if key in _ALLOWED_TESTS}
    return env


def _plain(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _plain(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(val) for val in value]
    return str(value)


def template_errors(text: str | None) -> list[str]:
    if not text:
        return []
    try:
        _env(strict=False).parse(text)
    except TemplateSyntaxError as exc:
        return [f"line {exc.lineno or 1}: {exc.message}"]
    return []


def template_fields(text: str | None) -> set[str]:
    """Names the template reads besides ``row``."""
    if not text:
        return set()
    parsed = _env(strict=False).parse(text)
    return set(meta.find_undeclared_variables(parsed)) - {"row"}


def render_field_template(text: str | None, row: Mapping[str, Any] | None) -> str:
    tmpl = _env(strict=False).from_string(text or "")
    return tmpl.render({"row": _plain(row or {})})
