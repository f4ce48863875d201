"""Builds a fresh widget for one field of the current element."""

from __future__ import annotations

import logging
from typing import Any, Dict

from admin_errors import WidgetNotConfigured
from field_registry import InterfaceSettings
from widgets import WIDGET_KINDS, Widget


_logger = logging.getLogger("admin.widgets")


def register_widget_kind(kind: str, widget_cls: type) -> None:
    """Make an extra widget kind available to every factory."""
    if not kind or not isinstance(widget_cls, type) or not issubclass(widget_cls, Widget):
        raise WidgetNotConfigured(code="WIDGET_KIND_INVALID", message=f"cannot register widget kind {kind!r}", path=kind)
    WIDGET_KINDS[kind] = widget_cls


class WidgetFactory:
    def __init__(self, settings: InterfaceSettings, kinds: Dict[str, type] | None = None) -> None:
        self._settings = settings
        self._kinds = kinds if kinds is not None else WIDGET_KINDS

    def create(self, controller: Any, code: str, row: dict) -> Widget:
        """Instantiate the widget for ``code`` bound to ``row``.

        The row is shared, not copied: pre-save hooks write their normalized
        values straight into the element data.
        """
        config = self._settings.fields.get(code)
        if config is None:
            raise WidgetNotConfigured(code="NO_WIDGET", message=f"Can't create widget for the code {code!r}", path=code)
        widget_cls = self._kinds.get(config.widget_kind)
        if widget_cls is None:
            raise WidgetNotConfigured(
                code="UNKNOWN_WIDGET_KIND",
                message=f"unknown widget kind {config.widget_kind!r} for field {code!r}",
                path=code,
            )
        widget = widget_cls(config)
        widget.bind(controller, code, getattr(controller, "entity", None), row)
        hook = getattr(controller, "on_widget_created", None)
        if hook is not None:
            hook(widget, row)
        _logger.debug("widget_created code=%s kind=%s", code, config.widget_kind)
        return widget
