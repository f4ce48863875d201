"""Build controllers and register interface settings from a JSON document.

Document shape::

    {"modules": {"shop": {"views": [{
        "entity": "shop.product",
        "list_view": "product_list",
        "edit_view": "product_edit",
        "primary_key": "ID",
        "fields": {"NAME": {"widget": "string", "required": true}},
        "tabs": {"MAIN": "Main"}
    }]}}}

Each view entry yields one list and one edit controller class sharing the
same settings block.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping

from admin_errors import InvalidInterfaceSettings
from edit_controller import EditController
from entity_gateway import EntityGateway, GatewayRegistry
from field_registry import FieldRegistry, normalize_settings, register_interface
from field_templates import template_errors
from list_controller import ListController


GatewayFactory = Callable[[str, str], EntityGateway]

_logger = logging.getLogger("admin.registry")
_NAME_RE = re.compile(r"[^0-9a-zA-Z]+")


def _class_name(*parts: str) -> str:
    return "".join(p.capitalize() for part in parts for p in _NAME_RE.split(part) if p)


def _check_templates(module: str, view: Mapping[str, Any]) -> None:
    fields = view.get("fields") if isinstance(view.get("fields"), Mapping) else {}
    for code, raw in fields.items():
        if not isinstance(raw, Mapping) or raw.get("widget") != "computed":
            continue
        errors = template_errors(raw.get("template"))
        if errors:
            raise InvalidInterfaceSettings(
                code="TEMPLATE_INVALID",
                message=f"computed field template does not compile: {errors[0]}",
                path=f"modules.{module}.fields.{code}.template",
            )


def build_controllers(module: str, view: Mapping[str, Any]) -> List[type]:
    """Controller classes for one view entry, wired to each other's pages."""
    entity = view.get("entity")
    list_view = view.get("list_view")
    edit_view = view.get("edit_view")
    if not isinstance(entity, str) or not entity:
        raise InvalidInterfaceSettings(code="ENTITY_MISSING", message="view entity is required", path=f"modules.{module}.entity")
    if not list_view or not edit_view:
        raise InvalidInterfaceSettings(
            code="VIEW_NAMES_MISSING",
            message="list_view and edit_view are required",
            path=f"modules.{module}.views",
        )
    attrs = {
        "module": module,
        "entity_ref": entity,
        "list_view_name": list_view,
        "edit_view_name": edit_view,
        "list_page_url_override": view.get("list_url"),
        "edit_page_url_override": view.get("edit_url"),
    }
    list_cls = type(_class_name(list_view, "controller"), (ListController,), {**attrs, "view_name": list_view})
    edit_cls = type(_class_name(edit_view, "controller"), (EditController,), {**attrs, "view_name": edit_view})
    return [list_cls, edit_cls]


def load_interfaces(
    document: Mapping[str, Any],
    registry: FieldRegistry,
    gateways: GatewayRegistry,
    gateway_factory: GatewayFactory,
) -> List[type]:
    modules = document.get("modules") if isinstance(document, Mapping) else None
    if not isinstance(modules, Mapping):
        raise InvalidInterfaceSettings(code="MODULES_INVALID", message="modules must be an object", path="modules")
    controllers: List[type] = []
    for module, module_def in modules.items():
        views = module_def.get("views") if isinstance(module_def, Mapping) else None
        if not isinstance(views, list):
            raise InvalidInterfaceSettings(code="VIEWS_INVALID", message="views must be a list", path=f"modules.{module}.views")
        for view in views:
            if not isinstance(view, Mapping):
                raise InvalidInterfaceSettings(code="VIEW_INVALID", message="view must be an object", path=f"modules.{module}.views")
            _check_templates(module, view)
            settings = normalize_settings({"fields": view.get("fields"), "tabs": view.get("tabs")})
            if settings is None:
                raise InvalidInterfaceSettings(code="FIELDS_MISSING", message="view has no fields", path=f"modules.{module}.fields")
            pair = build_controllers(module, view)
            entity = view["entity"]
            if not gateways.has(entity):
                gateways.register(entity, gateway_factory(entity, view.get("primary_key") or "ID"))
            if not register_interface(registry, module, settings, pair):
                raise InvalidInterfaceSettings(
                    code="VIEW_DUPLICATE",
                    message=f"views {view.get('list_view')!r}/{view.get('edit_view')!r} already registered",
                    path=f"modules.{module}.views",
                )
            controllers.extend(pair)
    _logger.info("interfaces_loaded modules=%s controllers=%s", len(modules), len(controllers))
    return controllers


def load_interfaces_file(
    path: str | Path,
    registry: FieldRegistry,
    gateways: GatewayRegistry,
    gateway_factory: GatewayFactory,
) -> List[type]:
    document: Dict[str, Any] = json.loads(Path(path).read_text(encoding="utf-8"))
    return load_interfaces(document, registry, gateways, gateway_factory)
