import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
for path in (ROOT, SRC):
    if path not in sys.path:
        sys.path.insert(0, path)

from admin_errors import EntityUnresolvable
from app.stores import MemoryEntityGateway
from entity_gateway import GatewayRegistry


class TestMemoryEntityGateway(unittest.TestCase):
    def setUp(self) -> None:
        self.gateway = MemoryEntityGateway("shop.product")
        self.gateway.add({"NAME": "Hammer", "PRICE": 20})
        self.gateway.add({"NAME": "Saw", "PRICE": 15})
        self.gateway.add({"NAME": "hand drill", "PRICE": 15})

    def test_ids_are_issued_in_order_and_accept_strings(self) -> None:
        self.assertEqual(self.gateway.add({"NAME": "Nail"}).id, 4)
        self.assertEqual(self.gateway.get_by_id("4")["NAME"], "Nail")
        self.assertIsNone(self.gateway.get_by_id("abc"))
        self.assertIsNone(self.gateway.get_by_id(True))

    def test_rows_are_copies(self) -> None:
        row = self.gateway.get_by_id(1)
        row["NAME"] = "Changed"
        self.assertEqual(self.gateway.get_by_id(1)["NAME"], "Hammer")

    def test_select_projection_keeps_key(self) -> None:
        self.assertEqual(self.gateway.get_by_id(1, select=["PRICE"]), {"PRICE": 20, "ID": 1})

    def test_update_is_partial(self) -> None:
        self.assertTrue(self.gateway.update(1, {"PRICE": 25}).success)
        self.assertEqual(self.gateway.get_by_id(1), {"NAME": "Hammer", "PRICE": 25, "ID": 1})
        failed = self.gateway.update(9, {"PRICE": 1})
        self.assertFalse(failed.success)
        self.assertEqual(failed.error_messages, ["Element #9 not found"])

    def test_delete(self) -> None:
        self.assertTrue(self.gateway.delete("2").success)
        self.assertIsNone(self.gateway.get_by_id(2))
        self.assertFalse(self.gateway.delete(2).success)

    def test_list_filter_order_and_window(self) -> None:
        rows = self.gateway.get_list(filter={"%NAME": "HA"}, order={"NAME": "asc"})
        self.assertEqual([r["NAME"] for r in rows], ["Hammer", "hand drill"])
        rows = self.gateway.get_list(order={"PRICE": "asc", "NAME": "desc"})
        self.assertEqual([r["ID"] for r in rows], [2, 3, 1])
        rows = self.gateway.get_list(limit=1, offset=1)
        self.assertEqual([r["ID"] for r in rows], [2])
        self.assertEqual(self.gateway.count({"PRICE": "15"}), 2)
        self.assertEqual(self.gateway.count({"PRICE": [20, 99]}), 1)


class TestGatewayRegistry(unittest.TestCase):
    def test_resolve_registered_gateway(self) -> None:
        registry = GatewayRegistry()
        gateway = MemoryEntityGateway("shop.product")
        self.assertTrue(registry.register("shop.product", gateway))
        self.assertIs(registry.resolve("shop.product"), gateway)
        self.assertEqual(registry.table_name_of("shop.product"), "shop.product")
        self.assertFalse(registry.register("shop.product", MemoryEntityGateway("other")))
        self.assertEqual(registry.refs(), ["shop.product"])

    def test_unknown_entity_fails_loudly(self) -> None:
        with self.assertRaises(EntityUnresolvable) as ctx:
            GatewayRegistry().resolve("shop.missing")
        self.assertEqual(ctx.exception.code, "ENTITY_UNRESOLVABLE")


if __name__ == "__main__":
    unittest.main()
