"""Interface settings fingerprints."""

from __future__ import annotations

import hashlib
from typing import Any

from .canonical_json import canonical_dumps


def settings_fingerprint(settings_obj: Any) -> str:
    """Return the canonical SHA-256 fingerprint of a settings snapshot."""
    data = canonical_dumps(settings_obj).encode("utf-8")
    digest = hashlib.sha256(data).hexdigest()
    return f"sha256:{digest}"
