"""
quotarelay/features/plans/catalog.py

Static plan catalog: Stripe price ID -> plan descriptor.

Loaded once at process start and never mutated. Unknown price IDs resolve
to None so provider-side catalog changes never fail a request.
"""

import json
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Any

from quotarelay.core.config import Settings, settings as default_settings


@dataclass(frozen=True)
class PlanDescriptor:
    """A purchasable plan. message_limit None means unlimited."""
    price_id: str
    name: str
    message_limit: Optional[int]

    @property
    def unlimited(self) -> bool:
        return self.message_limit is None


# Production price IDs. Earlier drafts mapped the same prices to
# trial/starter/unlimited; the Starter/Standard/Premium tiers replaced them.
DEFAULT_PLANS: List[Dict[str, Any]] = [
    {"priceId": "price_1RncU5ION331djj7xzUmC", "name": "Starter", "messageLimit": 50},
    {"priceId": "price_1RncUtION331djj7om5oiL", "name": "Standard", "messageLimit": 200},
    {"priceId": "price_1RncVMION331djj7F3jbN", "name": "Premium", "messageLimit": None},
]


def _parse_limit(value: Any, price_id: str) -> Optional[int]:
    # -1 is accepted as a legacy spelling of unlimited
    if value is None or value == -1:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"Invalid messageLimit for {price_id}: {value!r}")
    return value


class PlanCatalog:
    """Immutable lookup table keyed by price ID."""

    def __init__(self, plans: Iterable[PlanDescriptor]):
        table: Dict[str, PlanDescriptor] = {}
        for plan in plans:
            if not plan.price_id:
                raise ValueError("Plan price_id must be non-empty")
            if plan.price_id in table:
                raise ValueError(f"Duplicate price_id in plan catalog: {plan.price_id}")
            table[plan.price_id] = plan
        self._plans = table

    @classmethod
    def from_entries(cls, entries: Iterable[Dict[str, Any]]) -> "PlanCatalog":
        plans = []
        for entry in entries:
            price_id = entry.get("priceId")
            name = entry.get("name")
            if not price_id or not name:
                raise ValueError(f"Plan entry requires priceId and name: {entry!r}")
            plans.append(
                PlanDescriptor(
                    price_id=price_id,
                    name=name,
                    message_limit=_parse_limit(entry.get("messageLimit"), price_id),
                )
            )
        return cls(plans)

    @classmethod
    def from_json(cls, raw: str) -> "PlanCatalog":
        entries = json.loads(raw)
        if not isinstance(entries, list):
            raise ValueError("PLAN_CATALOG_JSON must be a JSON list")
        return cls.from_entries(entries)

    def lookup(self, price_id: Optional[str]) -> Optional[PlanDescriptor]:
        if not price_id:
            return None
        return self._plans.get(price_id)

    def __iter__(self) -> Iterator[PlanDescriptor]:
        return iter(self._plans.values())

    def __len__(self) -> int:
        return len(self._plans)

    def __contains__(self, price_id: object) -> bool:
        return price_id in self._plans


def load_catalog(settings_obj: Optional[Settings] = None) -> PlanCatalog:
    """Build the catalog from PLAN_CATALOG_JSON, or the built-in plans."""
    cfg = settings_obj or default_settings
    raw = getattr(cfg, "PLAN_CATALOG_JSON", None)
    if raw:
        return PlanCatalog.from_json(raw)
    return PlanCatalog.from_entries(DEFAULT_PLANS)
