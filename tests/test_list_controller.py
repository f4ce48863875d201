import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
for path in (ROOT, SRC):
    if path not in sys.path:
        sys.path.insert(0, path)

from app.stores import MemoryEntityGateway
from edit_controller import EditController
from entity_gateway import GatewayRegistry
from field_registry import FieldRegistry, register_interface
from flash_channel import FlashChannel, MemoryFlashStore
from list_controller import ListController


SETTINGS = {
    "fields": {
        "ID": "number",
        "NAME": {"widget": "string", "title": "Name", "filterable": True},
        "PRICE": {"widget": "number", "title": "Price", "filterable": True},
        "ACTIVE": {"widget": "boolean", "title": "Active"},
        "NOTE": {"widget": "text", "list_visible": False},
        "LABEL": {"widget": "computed", "virtual": True, "template": "{{ row.NAME }} ({{ row.PRICE }})"},
    }
}

LIST_URL = "/admin/route?lang=en&module=shop&view=product_list&restore_query=Y"


class ProductList(ListController):
    module = "shop"
    view_name = "product_list"
    edit_view_name = "product_edit"
    entity_ref = "shop.product"


class ProductEdit(EditController):
    module = "shop"
    view_name = "product_edit"
    list_view_name = "product_list"
    entity_ref = "shop.product"


class TestListController(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = FieldRegistry()
        register_interface(self.registry, "shop", SETTINGS, [ProductList, ProductEdit])
        self.gateways = GatewayRegistry()
        self.products = MemoryEntityGateway("shop.product")
        self.gateways.register("shop.product", self.products)
        for idx in range(1, 26):
            self.products.add({"NAME": f"Item {idx:02d}", "PRICE": idx, "NOTE": "internal"})
        self.store = MemoryFlashStore()

    def _list(self, params=None, actor=None):
        controller = ProductList(self.registry, self.gateways, FlashChannel(self.store, "s1"), actor=actor)
        return controller, controller.handle(params or {})

    def test_first_page_defaults(self) -> None:
        _, outcome = self._list()
        self.assertTrue(outcome["ok"])
        self.assertEqual(len(outcome["rows"]), 20)
        self.assertEqual(outcome["total"], 25)
        self.assertEqual(outcome["pages"], 2)
        self.assertEqual(outcome["page"], 1)
        self.assertEqual(outcome["rows"][0]["id"], 1)

    def test_second_page(self) -> None:
        _, outcome = self._list({"page": "2"})
        self.assertEqual([r["id"] for r in outcome["rows"]], [21, 22, 23, 24, 25])
        self.assertEqual(outcome["page"], 2)

    def test_page_size_is_capped(self) -> None:
        controller, _ = self._list()
        self.assertEqual(controller.build_query({"page_size": "500"})["limit"], 200)
        self.assertEqual(controller.build_query({"page_size": "abc", "page": "-3"})["offset"], 0)
        self.assertEqual(controller.build_query({"page_size": "5", "page": "3"})["offset"], 10)

    def test_sort_by_configured_field(self) -> None:
        _, outcome = self._list({"by": "PRICE", "order": "DESC"})
        self.assertEqual(outcome["order"], {"PRICE": "desc"})
        self.assertEqual(outcome["rows"][0]["cells"]["PRICE"], 25)

    def test_sort_by_virtual_or_unknown_field_falls_back_to_key(self) -> None:
        _, outcome = self._list({"by": "LABEL", "order": "sideways"})
        self.assertEqual(outcome["order"], {"ID": "asc"})
        _, outcome = self._list({"by": "MISSING"})
        self.assertEqual(outcome["order"], {"ID": "asc"})

    def test_filters_only_on_filterable_fields(self) -> None:
        _, outcome = self._list({"find_NAME": "item 1", "find_ACTIVE": "Y"})
        self.assertEqual(outcome["filter"], {"%NAME": "item 1"})
        self.assertEqual(outcome["total"], 10)

        _, outcome = self._list({"find_PRICE": "3"})
        self.assertEqual(outcome["filter"], {"PRICE": "3"})
        self.assertEqual([r["id"] for r in outcome["rows"]], [3])

    def test_row_cells_and_links(self) -> None:
        _, outcome = self._list()
        row = outcome["rows"][0]
        self.assertEqual(list(row["cells"]), ["ID", "NAME", "PRICE", "ACTIVE", "LABEL"])
        self.assertEqual(row["cells"]["LABEL"], "Item 01 (1)")
        self.assertEqual(row["cells"]["ACTIVE"], "No")
        self.assertEqual(row["edit_url"], "/admin/route?lang=en&module=shop&view=product_edit&ID=1")
        self.assertEqual(
            row["delete_url"],
            "/admin/route?lang=en&module=shop&view=product_edit&ID=1&action=delete&restore_query=Y",
        )

    def test_delete_links_need_delete_rights(self) -> None:
        _, outcome = self._list(actor={"roles": ["editor"]})
        self.assertNotIn("delete_url", outcome["rows"][0])

    def test_read_rights_required(self) -> None:
        _, outcome = self._list(actor={"roles": ["guest"]})
        self.assertFalse(outcome["ok"])
        self.assertEqual(outcome["reason"], "forbidden")
        self.assertEqual(FlashChannel(self.store, "s1").take_errors(), ["You are not allowed to view this list"])

    def test_group_delete(self) -> None:
        _, outcome = self._list({"action": "delete", "ids": ["1", "2"]}, actor={"roles": ["admin"]})
        self.assertTrue(outcome["ok"])
        self.assertEqual(outcome["redirect"], LIST_URL)
        self.assertEqual(self.products.count(), 23)
        self.assertEqual(FlashChannel(self.store, "s1").take_notes(), ["Deleted elements: 2"])

    def test_group_delete_reports_failures(self) -> None:
        _, outcome = self._list({"action": "delete", "ids": ["1", "99"]})
        self.assertFalse(outcome["ok"])
        self.assertEqual(outcome["reason"], "persist_failed")
        channel = FlashChannel(self.store, "s1")
        self.assertEqual(channel.take_errors(), ["Element #99 not found"])
        self.assertEqual(channel.take_notes(), ["Deleted elements: 1"])

    def test_group_delete_needs_delete_rights(self) -> None:
        _, outcome = self._list({"action": "delete", "ids": "1"}, actor={"roles": ["editor"]})
        self.assertEqual(outcome["reason"], "forbidden")
        self.assertEqual(self.products.count(), 25)

    def test_page_description(self) -> None:
        controller, outcome = self._list()
        page = controller.page(outcome)
        self.assertEqual(page["kind"], "list")
        self.assertEqual([c["code"] for c in page["columns"]], ["ID", "NAME", "PRICE", "ACTIVE", "LABEL"])
        self.assertFalse(page["columns"][-1]["sortable"])
        self.assertEqual(page["add_url"], "/admin/route?lang=en&module=shop&view=product_edit&action=add")
        self.assertEqual(page["messages"], {"errors": [], "notes": []})


if __name__ == "__main__":
    unittest.main()
