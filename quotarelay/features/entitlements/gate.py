"""
quotarelay/features/entitlements/gate.py

Usage gate and entitlement lookups.

Handles:
- consume: atomic test-and-increment against the stored limit
- lookup: strict read, NotFoundError when no record exists
- view: read with free-tier fallback, never writes
"""

import logging
from dataclasses import dataclass
from typing import Optional

from quotarelay.core.config import Settings, settings as default_settings
from quotarelay.core.errors import NotFoundError
from quotarelay.features.entitlements.store import (
    EntitlementRecord,
    EntitlementStore,
    ConsumeStatus,
)
from quotarelay.features.plans.catalog import PlanDescriptor


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageDecision:
    """Result of a consume call."""
    allowed: bool
    record: EntitlementRecord

    @property
    def remaining(self) -> Optional[int]:
        return self.record.remaining


def free_tier_plan(settings_obj: Optional[Settings] = None) -> PlanDescriptor:
    """Default plan for customers that never purchased. Has no price ID."""
    cfg = settings_obj or default_settings
    return PlanDescriptor(
        price_id="",
        name=cfg.FREE_PLAN_NAME,
        message_limit=cfg.FREE_MESSAGE_LIMIT,
    )


class UsageGate:
    """
    Quota enforcement over an EntitlementStore.

    Args:
        store: Entitlement store (single source of truth)
        free_plan: Plan shown for, and provisioned to, customers with no record
        autoprovision: When False, consume on an unknown customer raises NotFoundError
    """

    def __init__(self, store: EntitlementStore, free_plan: PlanDescriptor, autoprovision: bool = True):
        self.store = store
        self.free_plan = free_plan
        self.autoprovision = autoprovision

    def consume(self, customer_id: str) -> UsageDecision:
        """
        Use one message.

        Raises:
            NotFoundError: No record exists and auto-provisioning is disabled
        """
        default_plan = self.free_plan if self.autoprovision else None
        outcome = self.store.try_consume(customer_id, default_plan=default_plan)

        if outcome.status == ConsumeStatus.NOT_FOUND:
            raise NotFoundError(f"No entitlement for customer {customer_id}")

        if outcome.status == ConsumeStatus.DENIED:
            logger.info(
                "[usage] limit reached",
                extra={
                    "customer_id": customer_id,
                    "plan": outcome.record.plan,
                    "message_limit": outcome.record.message_limit,
                },
            )
            return UsageDecision(allowed=False, record=outcome.record)

        return UsageDecision(allowed=True, record=outcome.record)

    def lookup(self, customer_id: str) -> EntitlementRecord:
        """Strict read. Raises NotFoundError instead of provisioning."""
        record = self.store.get(customer_id)
        if record is None:
            raise NotFoundError(f"No entitlement for customer {customer_id}")
        return record

    def view(self, customer_id: str) -> EntitlementRecord:
        """Stored record, or an unsaved free-tier view of it."""
        record = self.store.get(customer_id)
        if record is not None:
            return record
        return EntitlementRecord(
            customer_id=customer_id,
            plan=self.free_plan.name,
            message_limit=self.free_plan.message_limit,
            messages_used=0,
        )
