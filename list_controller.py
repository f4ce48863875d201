"""List page controller: rights-gated paging, sorting and filtering."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from admin_controller import AdminController
from admin_errors import issue
from widgets import is_blank


FILTER_PREFIX = "find_"
TEXT_KINDS = {"string", "text"}

_logger = logging.getLogger("admin.list")


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


class ListController(AdminController):
    default_page_size = 20
    max_page_size = 200

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.redirect_url: str | None = None

    def columns(self) -> List[dict]:
        out = []
        for code, config in self.settings.fields.items():
            if not config.visible or config.settings.get("list_visible") is False:
                continue
            out.append(
                {
                    "code": code,
                    "title": config.title,
                    "widget": config.widget_kind,
                    "sortable": not config.virtual and config.settings.get("sortable", True) is not False,
                    "filterable": bool(config.settings.get("filterable")),
                }
            )
        return out

    def select_fields(self) -> List[str]:
        pk = self.pk()
        select = [pk]
        for code, config in self.settings.fields.items():
            if code == pk or (config.virtual and not config.force_select):
                continue
            select.append(code)
        return select

    def build_filter(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """``find_<code>`` params for filterable fields; text fields match by substring."""
        flt: Dict[str, Any] = {}
        for code, config in self.settings.fields.items():
            if not config.settings.get("filterable") or config.virtual:
                continue
            value = params.get(FILTER_PREFIX + code)
            if is_blank(value):
                continue
            key = f"%{code}" if config.widget_kind in TEXT_KINDS else code
            flt[key] = value
        return flt

    def build_order(self, params: Mapping[str, Any]) -> Dict[str, str]:
        pk = self.pk()
        by = params.get("by")
        config = self.settings.fields.get(by) if isinstance(by, str) else None
        if by != pk and (config is None or config.virtual or config.settings.get("sortable", True) is False):
            by = pk
        direction = str(params.get("order") or "asc").lower()
        if direction not in ("asc", "desc"):
            direction = "asc"
        return {by: direction}

    def build_query(self, params: Mapping[str, Any]) -> dict:
        page = _positive_int(params.get("page"), 1)
        page_size = min(_positive_int(params.get("page_size"), self.default_page_size), self.max_page_size)
        return {
            "select": self.select_fields(),
            "filter": self.build_filter(params),
            "order": self.build_order(params),
            "limit": page_size,
            "offset": (page - 1) * page_size,
        }

    def bind_row(self, row: dict) -> dict:
        pk = self.pk()
        record_id = row.get(pk)
        cells = {}
        for column in self.columns():
            widget = self.create_widget(column["code"], row)
            cells[column["code"]] = widget.list_cell()
        item = {
            "id": record_id,
            "cells": cells,
            "edit_url": self.edit_page_url(self.url_params(**{pk: record_id})),
        }
        if self.has_delete_rights():
            item["delete_url"] = self.edit_page_url(self.url_params(**{pk: record_id, "action": "delete", "restore_query": "Y"}))
        return item

    def handle(self, params: Mapping[str, Any] | None = None) -> dict:
        params = dict(params or {})
        if not self.has_read_rights():
            message = "You are not allowed to view this list"
            self.add_errors(message)
            return {"ok": False, "reason": "forbidden", "redirect": None, "errors": [issue("READ_FORBIDDEN", message)]}

        if params.get("action") == "delete":
            return self.group_delete(params.get("ids"))

        query = self.build_query(params)
        rows = self.entity.get_list(**query)
        total = self.entity.count(query["filter"])
        page_size = query["limit"]
        _logger.info(
            "list_loaded module=%s view=%s rows=%s total=%s offset=%s",
            self.module,
            self.view_name,
            len(rows),
            total,
            query["offset"],
        )
        return {
            "ok": True,
            "reason": None,
            "redirect": None,
            "errors": [],
            "rows": [self.bind_row(row) for row in rows],
            "total": total,
            "page": query["offset"] // page_size + 1,
            "page_size": page_size,
            "pages": (total + page_size - 1) // page_size if total else 0,
            "order": query["order"],
            "filter": query["filter"],
        }

    def group_delete(self, ids: Any) -> dict:
        if not self.has_delete_rights():
            message = "You are not allowed to delete elements"
            self.add_errors(message)
            return {"ok": False, "reason": "forbidden", "redirect": None, "errors": [issue("DELETE_FORBIDDEN", message)]}
        if not isinstance(ids, (list, tuple)):
            ids = [ids] if not is_blank(ids) else []
        deleted = 0
        errors = []
        for record_id in ids:
            result = self.entity.delete(record_id)
            if result.success:
                deleted += 1
            else:
                errors.extend(result.error_messages or [f"Element #{record_id} was not deleted"])
        if errors:
            self.add_errors(errors)
        if deleted:
            self.add_notes(f"Deleted elements: {deleted}")
        _logger.info("list_group_delete module=%s view=%s deleted=%s failed=%s", self.module, self.view_name, deleted, len(errors))
        self.redirect_url = self.list_page_url(self.url_params(restore_query="Y"))
        return {
            "ok": not errors,
            "reason": "persist_failed" if errors else None,
            "redirect": self.redirect_url,
            "errors": [issue("DELETE_FAILED", m) for m in errors],
        }

    def page(self, outcome: dict) -> dict:
        return {
            "kind": "list",
            "module": self.module,
            "view": self.view_name,
            "title": self.title,
            "columns": self.columns(),
            "messages": self.pending_messages(),
            "rows": outcome.get("rows", []),
            "total": outcome.get("total", 0),
            "page": outcome.get("page", 1),
            "pages": outcome.get("pages", 0),
            "page_size": outcome.get("page_size", self.default_page_size),
            "add_url": self.edit_page_url(self.url_params(action="add")) if self.has_write_rights() else None,
        }
