"""Detail/edit page controller: load or populate, validate, persist, redirect."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from admin_controller import AdminController
from admin_errors import Issue, issue
from entity_gateway import PersistResult
from field_registry import DEFAULT_TAB_ID
from widgets import Widget, is_blank


OP_SHOW_TAB_ELEMENTS = "EditController.show_tab_elements"
OP_EDIT_ACTION_BEFORE = "EditController.edit_action_before"
OP_EDIT_ACTION_AFTER = "EditController.edit_action_after"

STATE_INITIAL = "initial"
STATE_LOADED_FOR_VIEW = "loaded_for_view"
STATE_POPULATING = "populating_from_request"
STATE_VALIDATING = "validating"
STATE_REJECTED = "rejected"
STATE_PERSISTING = "persisting"
STATE_FAILED = "failed"
STATE_PERSISTED = "persisted"
STATE_REDIRECTING = "redirecting"

INTENT_VIEW = "view"
INTENT_APPLY = "apply"
INTENT_SAVE = "save"
INTENT_DELETE = "delete"
INTENT_CUSTOM = "custom"

_logger = logging.getLogger("admin.edit")


@dataclass(frozen=True)
class Intent:
    kind: str = INTENT_VIEW
    action: str | None = None


def intent_from_params(params: Mapping[str, Any] | None) -> Intent:
    """Read the submission intent once, at the transport boundary."""
    params = params or {}
    if "apply" in params:
        return Intent(INTENT_APPLY)
    if "save" in params:
        return Intent(INTENT_SAVE)
    action = params.get("action")
    if isinstance(action, str) and action:
        if action == "delete":
            return Intent(INTENT_DELETE, action)
        return Intent(INTENT_CUSTOM, action)
    return Intent(INTENT_VIEW)


class EditController(AdminController):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.data: Dict[str, Any] = {}
        self.state = STATE_INITIAL
        self.redirect_url: str | None = None
        self.validation_errors: List[Issue] = []
        self.request_id: Any = None
        self.created = False
        self.is_existing: bool | None = None
        self.menu: List[dict] = []

    # entry point

    def handle(self, intent: Intent, params: Mapping[str, Any] | None = None) -> dict:
        params = dict(params or {})
        self.request_id = params.get(self.pk())
        if intent.kind in (INTENT_APPLY, INTENT_SAVE):
            reason = self._handle_submit(intent, params)
        else:
            reason = self._handle_view(intent, params)
        self.set_element_title()
        return self._outcome(reason)

    def _outcome(self, reason: str | None) -> dict:
        return {
            "ok": reason is None,
            "reason": reason,
            "state": self.state,
            "redirect": self.redirect_url,
            "data": copy.deepcopy(self.data),
            "errors": list(self.validation_errors),
        }

    def _redirect(self, url: str) -> None:
        self.redirect_url = url
        self.state = STATE_REDIRECTING
        _logger.info("edit_redirect module=%s view=%s url=%s", self.module, self.view_name, url)

    def _handle_submit(self, intent: Intent, params: Dict[str, Any]) -> str | None:
        self.state = STATE_POPULATING
        submitted = params.get("FIELDS")
        self.data = dict(submitted) if isinstance(submitted, Mapping) else {}
        pk = self.pk()
        if not is_blank(params.get(pk)):
            self.data[pk] = params[pk]
        for code in self.settings.fields:
            if code in params and code != pk:
                self.data[code] = params[code]

        reason = self.edit_action()
        if reason is not None:
            return reason
        if intent.kind == INTENT_SAVE:
            self._redirect(self.list_page_url(self.url_params(restore_query="Y")))
        elif self.created:
            # the page was built for a key-less element; re-anchor it on the new id
            self._redirect(self.edit_page_url({pk: self.data.get(pk), "lang": self.lang}))
        else:
            self._redirect(self.edit_page_url(self.url_params(**{pk: self.data.get(pk)})))
        return None

    def _handle_view(self, intent: Intent, params: Dict[str, Any]) -> str | None:
        self.state = STATE_LOADED_FOR_VIEW
        pk = self.pk()
        record_id = params.get(pk)
        if not self.has_read_rights():
            message = "You are not allowed to view this element"
            self.add_errors(message)
            self.validation_errors = [issue("READ_FORBIDDEN", message)]
            self.data = {}
            _logger.info("edit_read_forbidden module=%s view=%s id=%s", self.module, self.view_name, record_id)
            return "forbidden"
        if is_blank(record_id):
            if intent.kind == INTENT_DELETE:
                message = "No element selected for deletion"
                self.add_errors(message)
                self.validation_errors = [issue("ELEMENT_NOT_SELECTED", message, pk)]
                self._redirect(self.list_page_url(self.url_params(restore_query="Y")))
                return "invalid"
            self.data = {}
            self.is_existing = False
        else:
            row = self.load_element(record_id, self.select_fields())
            if not row:
                _logger.warning("edit_not_found module=%s view=%s id=%s", self.module, self.view_name, record_id)
                self.add_errors(f"Element #{record_id} not found")
                self.validation_errors = [issue("ELEMENT_NOT_FOUND", f"Element #{record_id} not found", pk)]
                self._redirect(self.list_page_url(self.url_params(restore_query="Y")))
                return "not_found"
            self.data = row
            self.is_existing = True

        if intent.kind in (INTENT_DELETE, INTENT_CUSTOM) and intent.action:
            url = self.custom_action(intent.action, self.data.get(pk))
            if url:
                self._redirect(url)
        return None

    # loading

    def select_fields(self) -> List[str]:
        """Configured fields minus virtual ones that are not force-selected."""
        select = []
        for code, config in self.settings.fields.items():
            if config.virtual and not config.force_select:
                continue
            select.append(code)
        pk = self.pk()
        if pk not in select:
            select.insert(0, pk)
        return select

    def load_element(self, record_id: Any, select: List[str] | None = None) -> dict | None:
        return self.entity.get_by_id(record_id, select=select)

    # edit pipeline

    def edit_action(self) -> str | None:
        """Run rights check, widget pre-save hooks, persistence and post-save hooks.

        Returns None on success or the failure reason (``forbidden``,
        ``invalid``, ``persist_failed``); the attempted data stays in
        ``self.data`` either way.
        """
        self.set_context(OP_EDIT_ACTION_BEFORE)
        self.validation_errors = []
        if not self.has_write_rights():
            message = "You are not allowed to edit elements"
            self.add_errors(message)
            self.validation_errors = [issue("WRITE_FORBIDDEN", message)]
            self.state = STATE_LOADED_FOR_VIEW
            return "forbidden"

        pk = self.pk()
        submitted_id = self.data.get(pk)
        existing = self.load_element(submitted_id) if not is_blank(submitted_id) else None
        self.is_existing = existing is not None
        if existing is None and not is_blank(submitted_id):
            _logger.info("edit_unknown_key module=%s view=%s id=%s", self.module, self.view_name, submitted_id)

        self.state = STATE_VALIDATING
        all_widgets: List[Widget] = []
        for code in self.settings.fields:
            widget = self.create_widget(code, self.data)
            widget.process_edit_action()
            self.validation_errors.extend(widget.validation_errors)
            all_widgets.append(widget)

        if self.validation_errors:
            self.state = STATE_REJECTED
            self.add_errors([e["message"] for e in self.validation_errors])
            _logger.info(
                "edit_rejected module=%s view=%s errors=%s",
                self.module,
                self.view_name,
                [e["path"] for e in self.validation_errors],
            )
            self.state = STATE_LOADED_FOR_VIEW
            return "invalid"

        self.set_context(OP_EDIT_ACTION_AFTER)
        self.state = STATE_PERSISTING
        record_id = self.data.get(pk)
        result = self.save_element(record_id if existing else None)
        if result is None or not result.success:
            messages = list(result.error_messages) if result is not None else []
            if not messages:
                messages = ["Element was not saved"]
            self.state = STATE_FAILED
            self.add_errors(messages)
            self.validation_errors = [issue("PERSIST_FAILED", m) for m in messages]
            _logger.warning("edit_persist_failed module=%s view=%s id=%s errors=%s", self.module, self.view_name, record_id, messages)
            self.state = STATE_LOADED_FOR_VIEW
            return "persist_failed"

        saved_id = result.id if result.id is not None else record_id
        stored = self.load_element(saved_id)
        if stored:
            self.data.update(stored)
        self.data[pk] = saved_id
        self.state = STATE_PERSISTED
        _logger.info("edit_saved module=%s view=%s id=%s created=%s", self.module, self.view_name, saved_id, existing is None)

        for widget in all_widgets:
            widget.data = self.data
            widget.process_after_save_action()

        self.created = existing is None
        return None

    def persist_row(self) -> dict:
        """Element data as handed to the gateway: no key, no virtual fields."""
        pk = self.pk()
        row = {}
        for code, value in self.data.items():
            if code == pk:
                continue
            config = self.settings.fields.get(code)
            if config is not None and config.virtual:
                continue
            row[code] = value
        return row

    def save_element(self, record_id: Any = None) -> PersistResult:
        if record_id is not None:
            return self.entity.update(record_id, self.persist_row())
        return self.entity.add(self.persist_row())

    def delete_element(self, record_id: Any) -> PersistResult | None:
        if not self.has_delete_rights():
            self.add_errors("You are not allowed to delete elements")
            return None
        return self.entity.delete(record_id)

    def custom_action(self, action: str, record_id: Any = None) -> str | None:
        if action == "delete" and record_id is not None:
            result = self.delete_element(record_id)
            if result is not None:
                if result.success:
                    self.add_notes(f"Element #{record_id} deleted")
                    _logger.info("edit_deleted module=%s view=%s id=%s", self.module, self.view_name, record_id)
                else:
                    self.add_errors(result.error_messages or [f"Element #{record_id} was not deleted"])
            return self.list_page_url(self.url_params(restore_query="Y"))
        return None

    # page description

    def set_element_title(self) -> None:
        record_id = self.data.get(self.pk())
        if not is_blank(record_id):
            self.set_title(f"Edit element #{record_id}")
        else:
            self.set_title("New element")

    def layout(self) -> List[dict]:
        self.set_context(OP_SHOW_TAB_ELEMENTS)
        pk = self.pk()
        tabs = []
        for tab in self.settings.tabs:
            if not tab.visible:
                continue
            fields = []
            for code in self.settings.fields:
                widget = self.create_widget(code, self.data)
                field_tab = widget.get_setting("tab")
                if field_tab != tab.id and tab.id != DEFAULT_TAB_ID:
                    continue
                if not widget.is_visible():
                    continue
                fields.append(widget.edit_descriptor(is_pk=(code == pk)))
            tabs.append({**tab.to_dict(), "fields": fields})
        return tabs

    def hidden_fields(self) -> Dict[str, Any]:
        """Force-selected fields without a tab, carried through the form as-is."""
        hidden = {}
        for code, config in self.settings.fields.items():
            if config.tab is None and config.force_select and code in self.data:
                hidden[f"FIELDS[{code}]"] = self.data.get(code)
        return hidden

    def build_menu(self, show_delete_button: bool = True) -> List[dict]:
        pk = self.pk()
        menu = [
            {
                "text": "Return to list",
                "title": "Return to list",
                "link": self.list_page_url(self.url_params(restore_query="Y")),
                "icon": "btn_list",
            }
        ]
        menu.extend(self.menu)
        record_id = self.data.get(pk)
        submenu = []
        if not is_blank(record_id) and self.has_write_rights():
            submenu.append(
                {
                    "text": "Add element",
                    "title": "Add element",
                    "link": self.edit_page_url(self.url_params(action="add", restore_query="Y")),
                    "icon": "edit",
                }
            )
        if show_delete_button and not is_blank(record_id) and self.has_delete_rights():
            submenu.append(
                {
                    "text": "Delete element",
                    "title": "Delete element",
                    "link": self.edit_page_url(self.url_params(**{pk: record_id, "action": "delete", "restore_query": "Y"})),
                    "confirm": "Delete this element?",
                    "icon": "delete",
                }
            )
        if submenu:
            menu.append({"separator": True})
            menu.append({"text": "Actions", "title": "Actions", "menu": submenu, "icon": "btn_new"})
        return menu

    def form_action(self) -> str:
        query = dict(self.additional_url_params)
        if not is_blank(self.request_id):
            query[self.pk()] = self.request_id
        return self.edit_page_url(query)

    def back_url(self) -> str:
        return self.list_page_url(self.url_params(restore_query="Y"))

    def page(self) -> dict:
        return {
            "kind": "edit",
            "module": self.module,
            "view": self.view_name,
            "title": self.title,
            "menu": self.build_menu(),
            "messages": self.pending_messages(),
            "tabs": self.layout(),
            "hidden": self.hidden_fields(),
            "form_action": self.form_action(),
            "back_url": self.back_url(),
            "element": copy.deepcopy(self.data),
        }
