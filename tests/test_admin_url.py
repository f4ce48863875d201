import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from adminkit.admin_url import build_query, strip_reserved_params, view_url


def _url(view, params=None, default_url=None):
    return view_url(view, default_url, params, module="shop", lang="en", router_url="/admin/route")


class TestAdminUrl(unittest.TestCase):
    def test_router_url_without_params(self) -> None:
        self.assertEqual(_url("product_list"), "/admin/route?lang=en&module=shop&view=product_list")

    def test_reserved_params_are_stripped(self) -> None:
        url = _url("product_list", {"lang": "x", "module": "y", "view": "z", "extra": "v"})
        self.assertEqual(url, "/admin/route?lang=en&module=shop&view=product_list&extra=v")

    def test_only_reserved_params_leave_no_trailing_separator(self) -> None:
        url = _url("product_list", {"lang": "de", "view": "other"})
        self.assertEqual(url, "/admin/route?lang=en&module=shop&view=product_list")

    def test_default_url_bypasses_router(self) -> None:
        url = _url("product_edit", {"ID": 7}, default_url="/custom/products.php")
        self.assertEqual(url, "/custom/products.php?lang=en&ID=7")

    def test_nested_params_use_bracket_syntax(self) -> None:
        query = build_query({"FIELDS": {"NAME": "Acme Corp"}, "ids": [3, 4]})
        self.assertEqual(query, "FIELDS%5BNAME%5D=Acme+Corp&ids%5B0%5D=3&ids%5B1%5D=4")

    def test_booleans_and_none(self) -> None:
        self.assertEqual(build_query({"a": True, "b": False, "c": None}), "a=1&b=0")

    def test_strip_reserved_params_keeps_order(self) -> None:
        stripped = strip_reserved_params({"ID": 1, "lang": "en", "restore_query": "Y"})
        self.assertEqual(list(stripped.keys()), ["ID", "restore_query"])
        self.assertEqual(strip_reserved_params(None), {})


if __name__ == "__main__":
    unittest.main()
