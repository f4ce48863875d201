"""Write-once registry of admin interface settings keyed by (module, view)."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from adminkit.settings_hash import settings_fingerprint
from admin_errors import InterfaceNotConfigured, InvalidInterfaceSettings


DEFAULT_TAB_ID = "DEFAULT_TAB"
DEFAULT_TAB_LABEL = "Element"
DEFAULT_TAB_ICON = "main_user_edit"

_logger = logging.getLogger("admin.registry")


@dataclass(frozen=True)
class TabConfig:
    id: str
    label: str
    icon: str = ""
    visible: bool = True

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "icon": self.icon, "visible": self.visible}


@dataclass(frozen=True)
class FieldConfig:
    code: str
    widget_kind: str
    title: str
    tab: str | None = None
    visible: bool = True
    force_select: bool = False
    virtual: bool = False
    settings: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "widget": self.widget_kind,
            "title": self.title,
            "tab": self.tab,
            "visible": self.visible,
            "force_select": self.force_select,
            "virtual": self.virtual,
            "settings": dict(self.settings),
        }


@dataclass(frozen=True)
class InterfaceSettings:
    fields: Mapping[str, FieldConfig]
    tabs: Tuple[TabConfig, ...]

    def field_codes(self) -> list[str]:
        return list(self.fields.keys())

    def to_dict(self) -> dict:
        return {
            "fields": [f.to_dict() for f in self.fields.values()],
            "tabs": [t.to_dict() for t in self.tabs],
        }


_FIELD_FLAGS = {"widget", "title", "tab", "visible", "force_select", "virtual"}


def _field_from_raw(code: str, raw: Any) -> FieldConfig:
    if isinstance(raw, str):
        raw = {"widget": raw}
    if not isinstance(raw, Mapping):
        raise InvalidInterfaceSettings(code="FIELD_INVALID", message="field settings must be an object", path=f"fields.{code}")
    kind = raw.get("widget")
    if not isinstance(kind, str) or not kind:
        raise InvalidInterfaceSettings(code="FIELD_WIDGET_MISSING", message="field widget kind is required", path=f"fields.{code}.widget")
    title = raw.get("title")
    tab = raw.get("tab")
    extra = {key: value for key, value in raw.items() if key not in _FIELD_FLAGS}
    return FieldConfig(
        code=code,
        widget_kind=kind,
        title=title if isinstance(title, str) and title else code,
        tab=tab if isinstance(tab, str) and tab else None,
        visible=raw.get("visible", True) is not False,
        force_select=bool(raw.get("force_select", False)),
        virtual=bool(raw.get("virtual", False)),
        settings=MappingProxyType(extra),
    )


def normalize_tabs(raw: Any) -> Tuple[TabConfig, ...]:
    """Build tab configs from a tab list or the short ``{id: label}`` form.

    No tabs at all means one default tab that shows every field.
    """
    if not raw:
        return (TabConfig(id=DEFAULT_TAB_ID, label=DEFAULT_TAB_LABEL, icon=DEFAULT_TAB_ICON, visible=True),)
    if isinstance(raw, Mapping):
        converted = []
        for tab_id, tab_name in raw.items():
            visible = True
            if isinstance(tab_name, Mapping):
                visible = tab_name.get("visible", True) is not False
                tab_name = tab_name.get("title") or tab_id
            converted.append(TabConfig(id=str(tab_id), label=str(tab_name), icon="", visible=visible))
        return tuple(converted)
    if isinstance(raw, (list, tuple)):
        tabs = []
        for idx, tab in enumerate(raw):
            if isinstance(tab, TabConfig):
                tabs.append(tab)
                continue
            if not isinstance(tab, Mapping) or not isinstance(tab.get("id"), str):
                raise InvalidInterfaceSettings(code="TAB_INVALID", message="tab must be an object with an id", path=f"tabs[{idx}]")
            tabs.append(
                TabConfig(
                    id=tab["id"],
                    label=str(tab.get("label") or tab.get("title") or tab["id"]),
                    icon=str(tab.get("icon") or ""),
                    visible=tab.get("visible", True) is not False,
                )
            )
        return tuple(tabs)
    raise InvalidInterfaceSettings(code="TABS_INVALID", message="tabs must be a list or an object", path="tabs")


def normalize_settings(raw: Any) -> InterfaceSettings | None:
    """Turn plain ``{"fields": ..., "tabs": ...}`` data into InterfaceSettings.

    Returns None for empty input so callers can reject it without raising.
    """
    if isinstance(raw, InterfaceSettings):
        return raw if raw.fields else None
    if not raw:
        return None
    if not isinstance(raw, Mapping):
        raise InvalidInterfaceSettings(code="SETTINGS_INVALID", message="settings must be an object", path="$")
    raw_fields = raw.get("fields") or {}
    if not isinstance(raw_fields, Mapping):
        raise InvalidInterfaceSettings(code="FIELDS_INVALID", message="fields must be an object keyed by code", path="fields")
    if not raw_fields:
        return None
    fields = {}
    for code, field_raw in raw_fields.items():
        if isinstance(field_raw, FieldConfig):
            fields[code] = field_raw
        else:
            fields[code] = _field_from_raw(str(code), field_raw)
    return InterfaceSettings(fields=MappingProxyType(fields), tabs=normalize_tabs(raw.get("tabs")))


@dataclass(frozen=True)
class _Entry:
    settings: InterfaceSettings
    controller: Any
    fingerprint: str


class FieldRegistry:
    """Process-wide interface settings, written once at bootstrap.

    Construct one at startup and hand it to the controllers; a second
    registration for the same (module, view) is refused so repeated bootstrap
    runs cannot silently replace a layout.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Dict[str, _Entry]] = {}
        self._lock = threading.Lock()

    def register(self, module: str, view: str, settings: Any, controller: Any = None) -> bool:
        if not module:
            _logger.warning("registry_rejected reason=empty_module view=%s", view)
            return False
        normalized = normalize_settings(settings)
        if normalized is None:
            _logger.warning("registry_rejected reason=empty_settings module=%s view=%s", module, view)
            return False
        fingerprint = settings_fingerprint(normalized.to_dict())
        with self._lock:
            views = self._entries.setdefault(module, {})
            if view in views:
                _logger.warning("registry_rejected reason=already_registered module=%s view=%s", module, view)
                return False
            views[view] = _Entry(settings=normalized, controller=controller, fingerprint=fingerprint)
        _logger.info("registry_registered module=%s view=%s fields=%s fingerprint=%s", module, view, len(normalized.fields), fingerprint)
        return True

    def has(self, module: str, view: str) -> bool:
        return view in self._entries.get(module, {})

    def _entry(self, module: str, view: str) -> _Entry:
        entry = self._entries.get(module, {}).get(view)
        if entry is None:
            raise InterfaceNotConfigured(
                code="INTERFACE_NOT_CONFIGURED",
                message=f"no interface settings for module={module!r} view={view!r}",
                path=f"{module}/{view}",
            )
        return entry

    def get(self, module: str, view: str) -> InterfaceSettings:
        return self._entry(module, view).settings

    def route(self, module: str, view: str) -> tuple[Any, InterfaceSettings]:
        entry = self._entry(module, view)
        return entry.controller, entry.settings

    def fingerprint(self, module: str, view: str) -> str:
        return self._entry(module, view).fingerprint

    def views(self, module: str | None = None) -> List[tuple[str, str]]:
        out = []
        for mod in sorted(self._entries.keys()):
            if module is not None and mod != module:
                continue
            for view in sorted(self._entries[mod].keys()):
                out.append((mod, view))
        return out


def register_interface(registry: FieldRegistry, module: str, settings: Any, controllers: Iterable[Any]) -> bool:
    """Register one settings block for every controller class of a module."""
    for controller in controllers:
        if not registry.register(module, controller.view_name, settings, controller=controller):
            return False
    return True
