"""Admin kernel utilities: URL building and settings fingerprints."""

from .admin_url import build_query, strip_reserved_params, view_url
from .canonical_json import CanonicalJsonTypeError, canonical_dumps
from .settings_hash import settings_fingerprint

__all__ = [
    "CanonicalJsonTypeError",
    "build_query",
    "canonical_dumps",
    "settings_fingerprint",
    "strip_reserved_params",
    "view_url",
]
