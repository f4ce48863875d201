"""Canonical links to admin list and edit pages.

Links either go through the admin router::

    /admin/route?lang=en&module=shop&view=product_edit&ID=7

or, when a view has an explicit page URL, straight to it::

    /custom/products.php?lang=en&ID=7

Caller parameters never override the routing keys: ``lang``, ``module`` and
``view`` are stripped before the query string is appended. The query string
follows PHP ``http_build_query`` conventions (``a[b]=c`` nesting, ``+`` for
spaces, booleans as ``1``/``0``, ``None`` skipped) so links built here match
links built by older tooling.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterable, List, Tuple
from urllib.parse import quote_plus


RESERVED_PARAMS = ("lang", "module", "view")


def strip_reserved_params(params: Mapping[str, Any] | None) -> dict:
    if not params:
        return {}
    return {key: value for key, value in params.items() if key not in RESERVED_PARAMS}


def _scalar(value: Any) -> str:
    if value is True:
        return "1"
    if value is False:
        return "0"
    return str(value)


def _pairs(prefix: str, value: Any) -> Iterable[Tuple[str, str]]:
    if value is None:
        return
    if isinstance(value, Mapping):
        for key, item in value.items():
            yield from _pairs(f"{prefix}[{key}]", item)
        return
    if isinstance(value, (list, tuple)):
        for idx, item in enumerate(value):
            yield from _pairs(f"{prefix}[{idx}]", item)
        return
    yield prefix, _scalar(value)


def build_query(params: Mapping[str, Any] | None) -> str:
    parts: List[str] = []
    for key, value in (params or {}).items():
        for name, item in _pairs(str(key), value):
            parts.append(f"{quote_plus(name)}={quote_plus(item)}")
    return "&".join(parts)


def view_url(
    view: str | None,
    default_url: str | None,
    params: Mapping[str, Any] | None = None,
    *,
    module: str,
    lang: str,
    router_url: str,
) -> str:
    if default_url is not None:
        url = f"{default_url}?lang={quote_plus(lang)}"
    else:
        url = f"{router_url}?lang={quote_plus(lang)}&module={quote_plus(module)}&view={quote_plus(view or '')}"

    query = build_query(strip_reserved_params(params))
    if query:
        url += "&" + query
    return url
