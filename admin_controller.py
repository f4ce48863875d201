"""Shared base of the admin list and edit controllers.

A controller class describes one admin page: which module and view it
serves, which entity it edits and where its sibling pages live::

    class ProductEdit(EditController):
        module = "shop"
        view_name = "product_edit"
        list_view_name = "product_list"
        entity_ref = "shop.product"

Instances are short-lived: one per request, built with the process-wide
field registry, gateway registry and the session's flash channel.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping

from adminkit.admin_url import view_url
from entity_gateway import EntityGateway, GatewayRegistry
from field_registry import FieldRegistry, InterfaceSettings
from flash_channel import FlashChannel
from widget_factory import WidgetFactory
from widgets import Widget


DEFAULT_ROUTER_URL = "/admin/route"
DEFAULT_LANG = "en"

_logger = logging.getLogger("admin.controller")


def actor_roles(actor: Mapping[str, Any] | None) -> set[str]:
    if not isinstance(actor, Mapping):
        return set()
    roles = actor.get("roles")
    out = {r for r in roles if isinstance(r, str)} if isinstance(roles, (list, tuple, set)) else set()
    role = actor.get("role")
    if isinstance(role, str) and role:
        out.add(role)
    return out


class AdminController:
    module: str = ""
    view_name: str = ""
    entity_ref: str = ""
    list_view_name: str | None = None
    edit_view_name: str | None = None
    # explicit page URLs bypass the router
    list_page_url_override: str | None = None
    edit_page_url_override: str | None = None

    rights_roles: Dict[str, frozenset] = {
        "read": frozenset({"admin", "editor", "viewer"}),
        "write": frozenset({"admin", "editor"}),
        "delete": frozenset({"admin"}),
    }

    def __init__(
        self,
        registry: FieldRegistry,
        gateways: GatewayRegistry,
        flash: FlashChannel,
        *,
        actor: Mapping[str, Any] | None = None,
        lang: str = DEFAULT_LANG,
        router_url: str = DEFAULT_ROUTER_URL,
        additional_url_params: Mapping[str, Any] | None = None,
    ) -> None:
        self.registry = registry
        self.gateways = gateways
        self.flash = flash
        self.actor = actor
        self.lang = lang
        self.router_url = router_url
        self.additional_url_params: Dict[str, Any] = dict(additional_url_params or {})
        self.settings: InterfaceSettings = registry.get(self.module, self.view_name)
        self.entity: EntityGateway = gateways.resolve(self.entity_ref)
        self.widgets = WidgetFactory(self.settings)
        self.context = ""
        self.title = ""

    # configuration

    @classmethod
    def get_view_name(cls) -> str:
        return cls.view_name

    def get_fields(self) -> Mapping[str, Any]:
        return self.settings.fields

    def pk(self) -> str:
        return getattr(self.entity, "primary_key", None) or "ID"

    def table(self) -> str:
        return self.gateways.table_name_of(self.entity_ref)

    def set_title(self, title: str) -> None:
        self.title = title

    def set_context(self, context: str) -> None:
        self.context = context

    def get_context(self) -> str:
        return self.context

    # urls

    def view_url(self, view: str | None, default_url: str | None, params: Mapping[str, Any] | None = None) -> str:
        return view_url(view, default_url, params, module=self.module, lang=self.lang, router_url=self.router_url)

    def list_page_url(self, params: Mapping[str, Any] | None = None) -> str:
        return self.view_url(self.list_view_name or self.view_name, self.list_page_url_override, params)

    def edit_page_url(self, params: Mapping[str, Any] | None = None) -> str:
        return self.view_url(self.edit_view_name or self.view_name, self.edit_page_url_override, params)

    def url_params(self, **extra: Any) -> Dict[str, Any]:
        params = dict(self.additional_url_params)
        params.update(extra)
        return params

    # rights

    def _actor_has(self, right: str) -> bool:
        if self.actor is None:
            return True
        return bool(actor_roles(self.actor) & set(self.rights_roles.get(right, ())))

    def has_rights(self) -> bool:
        if self.actor is None:
            return True
        allowed = set()
        for roles in self.rights_roles.values():
            allowed |= set(roles)
        return bool(actor_roles(self.actor) & allowed)

    def has_read_rights(self) -> bool:
        return self._actor_has("read")

    def has_write_rights(self) -> bool:
        return self._actor_has("write")

    def has_delete_rights(self) -> bool:
        return self._actor_has("delete")

    # messages

    def add_errors(self, errors: Iterable[str] | str | None) -> None:
        self.flash.add_errors(errors)

    def add_notes(self, notes: Iterable[str] | str | None) -> None:
        self.flash.add_notes(notes)

    def pending_messages(self) -> Dict[str, List[str]]:
        """Take the flash buffers for display; notes wait while errors show."""
        errors = self.flash.take_errors()
        if errors:
            return {"errors": errors, "notes": []}
        return {"errors": [], "notes": self.flash.take_notes()}

    # widgets

    def create_widget(self, code: str, row: dict) -> Widget:
        return self.widgets.create(self, code, row)

    def on_widget_created(self, widget: Widget, row: dict) -> None:
        """Adjust a fresh widget from the row, e.g. lock fields once saved."""

    def custom_action(self, action: str, record_id: Any = None) -> str | None:
        """Handle an extra ``action`` parameter; may return a redirect URL."""
        return None
