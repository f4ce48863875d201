"""Per-field editing delegates.

A widget owns one field of one element during one request: it normalizes
the submitted value before saving, reports validation problems, reacts after
the element was persisted, and describes how the field should be shown on the
edit and list pages. Widgets are built fresh for every request by
``widget_factory.WidgetFactory`` and keep a reference to the full element row
so they can look at sibling fields.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, List

from admin_errors import Issue, issue
from conditions import eval_row_condition
from field_registry import FieldConfig
from field_templates import render_field_template


TRUE_VALUES = {"y", "yes", "1", "true", "on"}
FALSE_VALUES = {"n", "no", "0", "false", "off", ""}


def is_blank(value: Any) -> bool:
    if isinstance(value, str):
        return not value.strip()
    return value is None or value == [] or value == {}


class Widget:
    """Base capability set shared by every field kind."""

    kind = "base"
    multiline = False

    def __init__(self, config: FieldConfig) -> None:
        self.config = config
        self.code = config.code
        self._settings: Dict[str, Any] = {
            "widget": config.widget_kind,
            "title": config.title,
            "tab": config.tab,
            "visible": config.visible,
            "force_select": config.force_select,
            "virtual": config.virtual,
        }
        self._settings.update(config.settings)
        self.controller = None
        self.entity = None
        self.data: dict = {}
        self.validation_errors: List[Issue] = []

    def bind(self, controller: Any, code: str, entity: Any, data: dict) -> None:
        self.controller = controller
        self.code = code
        self.entity = entity
        self.data = data

    def get_setting(self, key: str | None = None, default: Any = None) -> Any:
        if key is None:
            return dict(self._settings)
        return self._settings.get(key, default)

    def set_setting(self, key: str, value: Any) -> None:
        self._settings[key] = value

    @property
    def title(self) -> str:
        return self._settings.get("title") or self.code

    @property
    def value(self) -> Any:
        return self.data.get(self.code)

    def is_submitted(self) -> bool:
        return self.code in self.data

    def _pk(self) -> str:
        return self.controller.pk() if self.controller is not None else "ID"

    def is_new_element(self) -> bool:
        # the controller's gateway lookup wins over whatever key was submitted
        existing = getattr(self.controller, "is_existing", None)
        if existing is not None:
            return not existing
        return is_blank(self.data.get(self._pk()))

    def is_visible(self) -> bool:
        if self._settings.get("visible") is False:
            return False
        condition = self._settings.get("visible_when")
        if condition:
            return eval_row_condition(condition, self.data)
        return True

    def is_required(self) -> bool:
        if self._settings.get("required"):
            return True
        condition = self._settings.get("required_when")
        if condition:
            return eval_row_condition(condition, self.data)
        return False

    def is_readonly(self) -> bool:
        return bool(self._settings.get("readonly"))

    def add_error(self, code: str, message: str, detail: dict | None = None) -> None:
        self.validation_errors.append(issue(code, message, self.code, detail))

    # edit pipeline hooks

    def process_edit_action(self) -> None:
        """Pre-save hook: normalize the submitted value and validate it."""
        self.validation_errors = []
        if self.is_readonly() and not self.is_new_element() and self.code != self._pk():
            self.data.pop(self.code, None)
            return
        if not self.is_submitted():
            if self.is_new_element() and self.is_required():
                self.add_error("REQUIRED_FIELD", f"Missing required field: {self.title}")
            return
        raw = self.data.get(self.code)
        if is_blank(raw):
            if self.is_required():
                self.add_error("REQUIRED_FIELD", f"Missing required field: {self.title}")
                return
            self.data[self.code] = self.empty_value()
            return
        try:
            value = self.normalize(raw)
        except (TypeError, ValueError) as exc:
            self.add_error("TYPE_MISMATCH", f"{self.title}: {exc}")
            return
        self.data[self.code] = value
        self.check(value)

    def process_after_save_action(self) -> None:
        """Post-save hook; ``self.data`` holds the persisted element."""

    def empty_value(self) -> Any:
        return None

    def normalize(self, value: Any) -> Any:
        return value

    def check(self, value: Any) -> None:
        pass

    # page description

    def edit_descriptor(self, is_pk: bool = False) -> dict:
        return {
            "code": self.code,
            "title": self.title,
            "widget": self.kind,
            "value": self.display_value(),
            "required": self.is_required(),
            "readonly": is_pk or self.is_readonly(),
            "multiline": self.multiline,
            "hint": self._settings.get("hint"),
        }

    def display_value(self) -> Any:
        return self.value

    def list_cell(self) -> Any:
        return self.display_value()


class StringWidget(Widget):
    kind = "string"

    def normalize(self, value: Any) -> Any:
        if isinstance(value, (dict, list)):
            raise TypeError("must be a string")
        value = str(value)
        if self._settings.get("trim", True):
            value = value.strip()
        return value

    def check(self, value: Any) -> None:
        max_length = self._settings.get("max_length")
        if isinstance(max_length, int) and len(value) > max_length:
            self.add_error("TOO_LONG", f"{self.title} must be at most {max_length} characters", {"max_length": max_length})
        pattern = self._settings.get("pattern")
        if isinstance(pattern, str) and pattern and not re.fullmatch(pattern, value):
            self.add_error("PATTERN_MISMATCH", f"{self.title} has an invalid format", {"pattern": pattern})


class TextWidget(StringWidget):
    kind = "text"
    multiline = True

    def list_cell(self) -> Any:
        value = self.value
        limit = self._settings.get("list_length", 80)
        if isinstance(value, str) and isinstance(limit, int) and len(value) > limit:
            return value[:limit] + "…"
        return value


class NumberWidget(Widget):
    kind = "number"

    def normalize(self, value: Any) -> Any:
        if isinstance(value, bool):
            raise TypeError("must be a number")
        if isinstance(value, (int, float)):
            return value
        text = str(value).strip().replace(",", ".")
        try:
            number = float(text)
        except ValueError:
            raise ValueError("must be a number") from None
        if self._settings.get("integer") or (number.is_integer() and "." not in text and "e" not in text.lower()):
            if not number.is_integer():
                raise ValueError("must be a whole number")
            return int(number)
        return number

    def check(self, value: Any) -> None:
        low = self._settings.get("min")
        high = self._settings.get("max")
        if low is not None and value < low:
            self.add_error("OUT_OF_RANGE", f"{self.title} must be at least {low}", {"min": low})
        if high is not None and value > high:
            self.add_error("OUT_OF_RANGE", f"{self.title} must be at most {high}", {"max": high})


class BooleanWidget(Widget):
    kind = "boolean"

    def process_edit_action(self) -> None:
        if self.is_submitted() and is_blank(self.data.get(self.code)) and not self.is_readonly():
            self.data[self.code] = False
        super().process_edit_action()

    def empty_value(self) -> Any:
        return False

    def normalize(self, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
        raise ValueError("must be yes or no")

    def list_cell(self) -> Any:
        return "Yes" if self.value in (True, "Y", "1", 1) else "No"


def _option_values(options: Any) -> list:
    values = []
    for opt in options or []:
        if isinstance(opt, dict) and "value" in opt:
            values.append(opt["value"])
        else:
            values.append(opt)
    return values


class SelectWidget(Widget):
    kind = "select"

    def _allowed(self) -> list:
        return _option_values(self._settings.get("options"))

    def _match(self, value: Any) -> Any:
        for allowed in self._allowed():
            if value == allowed or str(value) == str(allowed):
                return allowed
        raise ValueError(f"must be one of {self._allowed()}")

    def normalize(self, value: Any) -> Any:
        if self._settings.get("multiple"):
            items = value if isinstance(value, list) else [value]
            return [self._match(item) for item in items if not is_blank(item)]
        return self._match(value)

    def edit_descriptor(self, is_pk: bool = False) -> dict:
        descriptor = super().edit_descriptor(is_pk)
        descriptor["options"] = [
            opt if isinstance(opt, dict) else {"value": opt, "label": str(opt)}
            for opt in self._settings.get("options") or []
        ]
        descriptor["multiple"] = bool(self._settings.get("multiple"))
        return descriptor

    def list_cell(self) -> Any:
        labels = {}
        for opt in self._settings.get("options") or []:
            if isinstance(opt, dict) and "value" in opt:
                labels[str(opt["value"])] = opt.get("label", opt["value"])
        value = self.value
        if isinstance(value, list):
            return ", ".join(str(labels.get(str(v), v)) for v in value)
        return labels.get(str(value), value) if value is not None else None


class DateWidget(Widget):
    kind = "date"

    def normalize(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        try:
            return date.fromisoformat(str(value).strip()).isoformat()
        except ValueError:
            raise ValueError("must be YYYY-MM-DD") from None


class DateTimeWidget(Widget):
    kind = "datetime"

    def normalize(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValueError("must be ISO8601") from None
        return parsed.isoformat()


class ReferenceWidget(Widget):
    """Holds the id of a row of another entity."""

    kind = "reference"

    def _target(self):
        ref = self._settings.get("entity")
        gateways = getattr(self.controller, "gateways", None)
        if not ref or gateways is None:
            return None
        return gateways.resolve(ref)

    def normalize(self, value: Any) -> Any:
        if isinstance(value, (dict, list)):
            raise TypeError("must be an id")
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return value

    def check(self, value: Any) -> None:
        target = self._target()
        if target is None:
            return
        if target.get_by_id(value) is None:
            self.add_error("REFERENCE_NOT_FOUND", f"{self.title}: element #{value} does not exist", {"entity": self._settings.get("entity")})

    def display_value(self) -> Any:
        value = self.value
        display = self._settings.get("display_field")
        if is_blank(value) or not display:
            return value
        target = self._target()
        row = target.get_by_id(value, select=[display]) if target is not None else None
        if not row:
            return value
        return {"id": value, "label": row.get(display)}


class ComputedWidget(Widget):
    """Virtual field rendered from a template over the row; never stored."""

    kind = "computed"

    def process_edit_action(self) -> None:
        self.validation_errors = []
        self.data.pop(self.code, None)

    def display_value(self) -> Any:
        return render_field_template(self._settings.get("template"), self.data)

    def edit_descriptor(self, is_pk: bool = False) -> dict:
        descriptor = super().edit_descriptor(is_pk)
        descriptor["readonly"] = True
        descriptor["required"] = False
        return descriptor


class FileWidget(Widget):
    """Accepts upload objects or metadata dicts and stores metadata only."""

    kind = "file"
    _uploaded = False

    def normalize(self, value: Any) -> Any:
        if isinstance(value, dict):
            name = value.get("name") or value.get("filename")
            if not name:
                raise ValueError("file name is missing")
            return {
                "name": str(name),
                "content_type": value.get("content_type"),
                "size": value.get("size"),
            }
        filename = getattr(value, "filename", None)
        if filename:
            self._uploaded = True
            return {
                "name": str(filename),
                "content_type": getattr(value, "content_type", None),
                "size": getattr(value, "size", None),
            }
        if isinstance(value, str):
            return {"name": value, "content_type": None, "size": None}
        raise TypeError("must be a file")

    def check(self, value: Any) -> None:
        extensions = self._settings.get("extensions")
        if extensions:
            allowed = {str(ext).lower().lstrip(".") for ext in extensions}
            ext = value["name"].rsplit(".", 1)[-1].lower() if "." in value["name"] else ""
            if ext not in allowed:
                self.add_error("FILE_TYPE", f"{self.title}: .{ext} files are not allowed", {"extensions": sorted(allowed)})
        max_size = self._settings.get("max_size")
        size = value.get("size")
        if isinstance(max_size, int) and isinstance(size, int) and size > max_size:
            self.add_error("FILE_TOO_LARGE", f"{self.title}: file is larger than {max_size} bytes", {"max_size": max_size})

    def process_after_save_action(self) -> None:
        if self._uploaded and self.controller is not None:
            value = self.value or {}
            self.controller.add_notes(f"{self.title}: {value.get('name')} uploaded")

    def list_cell(self) -> Any:
        value = self.value
        return value.get("name") if isinstance(value, dict) else value


WIDGET_KINDS: Dict[str, type] = {
    cls.kind: cls
    for cls in (
        StringWidget,
        TextWidget,
        NumberWidget,
        BooleanWidget,
        SelectWidget,
        DateWidget,
        DateTimeWidget,
        ReferenceWidget,
        ComputedWidget,
        FileWidget,
    )
}
