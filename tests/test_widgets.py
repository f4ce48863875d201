import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
for path in (ROOT, SRC):
    if path not in sys.path:
        sys.path.insert(0, path)

from admin_errors import WidgetNotConfigured
from app.stores import MemoryEntityGateway
from entity_gateway import GatewayRegistry
from field_registry import normalize_settings
from widget_factory import WidgetFactory, register_widget_kind
from widgets import WIDGET_KINDS, StringWidget


SETTINGS = normalize_settings(
    {
        "fields": {
            "ID": "number",
            "NAME": {"widget": "string", "title": "Name", "required": True, "max_length": 5},
            "CODE": {"widget": "string", "pattern": "[A-Z]{3}", "readonly": True},
            "PRICE": {"widget": "number", "min": 0, "max": 100},
            "QTY": {"widget": "number", "integer": True},
            "ACTIVE": "boolean",
            "COLOR": {"widget": "select", "options": [{"value": "r", "label": "Red"}, "g"]},
            "TAGS": {"widget": "select", "options": ["a", "b"], "multiple": True},
            "RELEASED": "date",
            "UPDATED": "datetime",
            "VAT_ID": {"widget": "string", "required_when": {"op": "eq", "field": "TYPE", "value": "company"}},
            "TYPE": "string",
            "CATEGORY": {"widget": "reference", "entity": "shop.category", "display_field": "TITLE"},
            "LABEL": {"widget": "computed", "virtual": True, "template": "{{ row.NAME }} #{{ row.ID }}"},
            "PHOTO": {"widget": "file", "extensions": ["jpg", "png"], "max_size": 1000},
            "NOTES": {"widget": "text", "list_length": 4, "visible_when": {"op": "exists", "field": "ID"}},
            "BROKEN": "no_such_kind",
        }
    }
)


class _Controller:
    def __init__(self, gateways):
        self.gateways = gateways
        self.notes = []
        self.created = []

    def pk(self):
        return "ID"

    def add_notes(self, notes):
        self.notes.append(notes)

    def on_widget_created(self, widget, row):
        self.created.append(widget.code)


class _Upload:
    filename = "photo.jpg"
    content_type = "image/jpeg"
    size = 200


class TestWidgets(unittest.TestCase):
    def setUp(self) -> None:
        self.gateways = GatewayRegistry()
        self.categories = MemoryEntityGateway("shop.category")
        self.gateways.register("shop.category", self.categories)
        self.controller = _Controller(self.gateways)
        self.factory = WidgetFactory(SETTINGS)

    def _run(self, code, row):
        widget = self.factory.create(self.controller, code, row)
        widget.process_edit_action()
        return widget

    def _codes(self, widget):
        return [e["code"] for e in widget.validation_errors]

    def test_factory_binds_row_and_calls_hook(self) -> None:
        row = {"NAME": "Acme"}
        widget = self.factory.create(self.controller, "NAME", row)
        self.assertIs(widget.data, row)
        self.assertEqual(widget.value, "Acme")
        self.assertEqual(self.controller.created, ["NAME"])
        self.assertIsNot(widget, self.factory.create(self.controller, "NAME", row))

    def test_factory_errors(self) -> None:
        with self.assertRaises(WidgetNotConfigured) as ctx:
            self.factory.create(self.controller, "MISSING", {})
        self.assertEqual(ctx.exception.code, "NO_WIDGET")
        with self.assertRaises(WidgetNotConfigured) as ctx:
            self.factory.create(self.controller, "BROKEN", {})
        self.assertEqual(ctx.exception.code, "UNKNOWN_WIDGET_KIND")

    def test_register_widget_kind(self) -> None:
        class UpperWidget(StringWidget):
            kind = "upper"

            def normalize(self, value):
                return super().normalize(value).upper()

        register_widget_kind("upper", UpperWidget)
        try:
            factory = WidgetFactory(normalize_settings({"fields": {"NAME": "upper"}}))
            row = {"NAME": " acme "}
            factory.create(self.controller, "NAME", row).process_edit_action()
            self.assertEqual(row["NAME"], "ACME")
        finally:
            WIDGET_KINDS.pop("upper", None)
        with self.assertRaises(WidgetNotConfigured):
            register_widget_kind("bad", dict)

    def test_absent_field_is_untouched_on_existing_element(self) -> None:
        row = {"ID": 4}
        widget = self._run("NAME", row)
        self.assertEqual(widget.validation_errors, [])
        self.assertNotIn("NAME", row)

    def test_absent_required_field_on_new_element(self) -> None:
        widget = self._run("NAME", {})
        self.assertEqual(self._codes(widget), ["REQUIRED_FIELD"])
        self.assertEqual(widget.validation_errors[0]["message"], "Missing required field: Name")

    def test_blank_required_field(self) -> None:
        row = {"ID": 4, "NAME": "  "}
        self.assertEqual(self._codes(self._run("NAME", row)), ["REQUIRED_FIELD"])

    def test_string_trim_length_and_pattern(self) -> None:
        row = {"NAME": " Acme "}
        self.assertEqual(self._run("NAME", row).validation_errors, [])
        self.assertEqual(row["NAME"], "Acme")
        self.assertEqual(self._codes(self._run("NAME", {"NAME": "Too long"})), ["TOO_LONG"])
        self.assertEqual(self._codes(self._run("CODE", {"CODE": "ab"})), ["PATTERN_MISMATCH"])

    def test_readonly_field_dropped_on_existing_element(self) -> None:
        row = {"ID": 4, "CODE": "XYZ"}
        self.assertEqual(self._run("CODE", row).validation_errors, [])
        self.assertNotIn("CODE", row)

    def test_number_parsing_and_range(self) -> None:
        row = {"PRICE": "12,5", "QTY": "3"}
        self._run("PRICE", row)
        self._run("QTY", row)
        self.assertEqual(row["PRICE"], 12.5)
        self.assertEqual(row["QTY"], 3)
        self.assertEqual(self._codes(self._run("PRICE", {"PRICE": "101"})), ["OUT_OF_RANGE"])
        self.assertEqual(self._codes(self._run("PRICE", {"PRICE": "abc"})), ["TYPE_MISMATCH"])
        self.assertEqual(self._codes(self._run("QTY", {"QTY": "1.5"})), ["TYPE_MISMATCH"])

    def test_boolean_values(self) -> None:
        row = {"ACTIVE": "Y"}
        self._run("ACTIVE", row)
        self.assertIs(row["ACTIVE"], True)
        row = {"ACTIVE": ""}
        self._run("ACTIVE", row)
        self.assertIs(row["ACTIVE"], False)
        self.assertEqual(self._codes(self._run("ACTIVE", {"ACTIVE": "maybe"})), ["TYPE_MISMATCH"])
        widget = self.factory.create(self.controller, "ACTIVE", {"ACTIVE": True})
        self.assertEqual(widget.list_cell(), "Yes")

    def test_select_options(self) -> None:
        row = {"COLOR": "g", "TAGS": ["a", "", "b"]}
        self._run("COLOR", row)
        self._run("TAGS", row)
        self.assertEqual(row["TAGS"], ["a", "b"])
        self.assertEqual(self._codes(self._run("COLOR", {"COLOR": "x"})), ["TYPE_MISMATCH"])
        widget = self.factory.create(self.controller, "COLOR", {"COLOR": "r"})
        self.assertEqual(widget.list_cell(), "Red")
        options = widget.edit_descriptor()["options"]
        self.assertEqual(options[1], {"value": "g", "label": "g"})

    def test_dates(self) -> None:
        row = {"RELEASED": "2024-02-29", "UPDATED": "2024-02-29T10:00:00Z"}
        self._run("RELEASED", row)
        self._run("UPDATED", row)
        self.assertEqual(row["RELEASED"], "2024-02-29")
        self.assertEqual(row["UPDATED"], "2024-02-29T10:00:00+00:00")
        self.assertEqual(self._codes(self._run("RELEASED", {"RELEASED": "29.02.2024"})), ["TYPE_MISMATCH"])

    def test_required_when_condition(self) -> None:
        row = {"ID": 1, "TYPE": "company", "VAT_ID": ""}
        self.assertEqual(self._codes(self._run("VAT_ID", row)), ["REQUIRED_FIELD"])
        row = {"ID": 1, "TYPE": "person", "VAT_ID": ""}
        self.assertEqual(self._run("VAT_ID", row).validation_errors, [])

    def test_visible_when_condition(self) -> None:
        self.assertFalse(self.factory.create(self.controller, "NOTES", {}).is_visible())
        self.assertTrue(self.factory.create(self.controller, "NOTES", {"ID": 2}).is_visible())

    def test_reference_checks_target(self) -> None:
        self.categories.add({"TITLE": "Tools"})
        row = {"CATEGORY": "1"}
        self.assertEqual(self._run("CATEGORY", row).validation_errors, [])
        self.assertEqual(row["CATEGORY"], 1)
        self.assertEqual(self._codes(self._run("CATEGORY", {"CATEGORY": "9"})), ["REFERENCE_NOT_FOUND"])
        widget = self.factory.create(self.controller, "CATEGORY", {"CATEGORY": 1})
        self.assertEqual(widget.display_value(), {"id": 1, "label": "Tools"})

    def test_computed_field_is_removed_and_rendered(self) -> None:
        row = {"ID": 3, "NAME": "Acme", "LABEL": "posted"}
        widget = self._run("LABEL", row)
        self.assertNotIn("LABEL", row)
        self.assertEqual(widget.display_value(), "Acme #3")
        self.assertTrue(widget.edit_descriptor()["readonly"])

    def test_file_upload_metadata_and_note(self) -> None:
        row = {"PHOTO": _Upload()}
        widget = self._run("PHOTO", row)
        self.assertEqual(row["PHOTO"], {"name": "photo.jpg", "content_type": "image/jpeg", "size": 200})
        widget.process_after_save_action()
        self.assertEqual(self.controller.notes, ["PHOTO: photo.jpg uploaded"])

    def test_file_checks(self) -> None:
        self.assertEqual(self._codes(self._run("PHOTO", {"PHOTO": {"name": "doc.pdf", "size": 10}})), ["FILE_TYPE"])
        self.assertEqual(self._codes(self._run("PHOTO", {"PHOTO": {"name": "big.png", "size": 5000}})), ["FILE_TOO_LARGE"])

    def test_text_list_cell_truncates(self) -> None:
        widget = self.factory.create(self.controller, "NOTES", {"NOTES": "abcdefgh"})
        self.assertEqual(widget.list_cell(), "abcd…")

    def test_edit_descriptor_marks_pk_readonly(self) -> None:
        descriptor = self.factory.create(self.controller, "ID", {"ID": 5}).edit_descriptor(is_pk=True)
        self.assertTrue(descriptor["readonly"])
        self.assertEqual(descriptor["value"], 5)


if __name__ == "__main__":
    unittest.main()
