"""Storage contract consumed by the admin controllers.

Controllers never talk to a database directly. Each entity reference
(``"shop.product"``) maps to one gateway object registered at startup;
lookups for unknown references fail loudly instead of inventing storage.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List

from admin_errors import EntityUnresolvable


_logger = logging.getLogger("admin.gateway")


@dataclass
class PersistResult:
    success: bool
    id: Any = None
    error_messages: List[str] = field(default_factory=list)

    @classmethod
    def ok(cls, record_id: Any = None) -> "PersistResult":
        return cls(success=True, id=record_id)

    @classmethod
    def failed(cls, *messages: str) -> "PersistResult":
        return cls(success=False, error_messages=[m for m in messages if m])


class EntityGateway:
    """Base gateway; concrete stores override every method.

    ``update`` is a partial write: keys missing from ``row`` keep their
    stored values.
    """

    table_name: str = ""
    primary_key: str = "ID"

    def get_by_id(self, record_id: Any, select: List[str] | None = None) -> dict | None:
        raise NotImplementedError

    def add(self, row: dict) -> PersistResult:
        raise NotImplementedError

    def update(self, record_id: Any, row: dict) -> PersistResult:
        raise NotImplementedError

    def delete(self, record_id: Any) -> PersistResult:
        raise NotImplementedError

    def get_list(
        self,
        select: List[str] | None = None,
        filter: Dict[str, Any] | None = None,
        order: Dict[str, str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> List[dict]:
        raise NotImplementedError

    def count(self, filter: Dict[str, Any] | None = None) -> int:
        raise NotImplementedError


class GatewayRegistry:
    def __init__(self) -> None:
        self._gateways: Dict[str, EntityGateway] = {}
        self._lock = threading.Lock()

    def register(self, entity_ref: str, gateway: EntityGateway) -> bool:
        if not entity_ref:
            return False
        with self._lock:
            if entity_ref in self._gateways:
                _logger.warning("gateway_rejected reason=already_registered entity=%s", entity_ref)
                return False
            self._gateways[entity_ref] = gateway
        _logger.info("gateway_registered entity=%s table=%s", entity_ref, gateway.table_name)
        return True

    def has(self, entity_ref: str) -> bool:
        return entity_ref in self._gateways

    def resolve(self, entity_ref: str) -> EntityGateway:
        gateway = self._gateways.get(entity_ref) if isinstance(entity_ref, str) else None
        if gateway is None:
            raise EntityUnresolvable(
                code="ENTITY_UNRESOLVABLE",
                message=f"no gateway registered for entity {entity_ref!r}",
                path="entity",
            )
        return gateway

    def table_name_of(self, entity_ref: str) -> str:
        return self.resolve(entity_ref).table_name

    def refs(self) -> list[str]:
        return sorted(self._gateways.keys())
