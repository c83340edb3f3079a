"""
Entitlement API routes.

- GET  /entitlements/{customer_id}: strict lookup, 404 when absent
- GET  /entitlements/{customer_id}/usage: lookup with free-tier fallback, never writes
- POST /entitlements/{customer_id}/consume: use one message
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from quotarelay.api.deps import get_usage_gate
from quotarelay.features.entitlements.gate import UsageGate
from quotarelay.features.entitlements.store import EntitlementRecord


router = APIRouter(prefix="/entitlements", tags=["entitlements"])


class EntitlementResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    customer_id: str
    plan: str
    message_limit: Optional[int]  # null = unlimited
    messages_used: int

    @classmethod
    def from_record(cls, record: EntitlementRecord) -> "EntitlementResponse":
        return cls(
            customer_id=record.customer_id,
            plan=record.plan,
            message_limit=record.message_limit,
            messages_used=record.messages_used,
        )


class ConsumeResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    allowed: bool
    remaining: Optional[int] = None  # null when denied or unlimited
    plan: str
    message_limit: Optional[int]


@router.get("/{customer_id}", response_model=EntitlementResponse)
def get_entitlement(customer_id: str, gate: UsageGate = Depends(get_usage_gate)):
    return EntitlementResponse.from_record(gate.lookup(customer_id))


@router.get("/{customer_id}/usage", response_model=EntitlementResponse)
def get_usage(customer_id: str, gate: UsageGate = Depends(get_usage_gate)):
    return EntitlementResponse.from_record(gate.view(customer_id))


@router.post("/{customer_id}/consume", response_model=ConsumeResponse)
def consume(customer_id: str, gate: UsageGate = Depends(get_usage_gate)):
    """
    Use one message against the customer's quota.

    Returns:
        {"allowed": true, "remaining": 9, ...} or {"allowed": false, ...}

    Errors:
        404: Unknown customer and FREE_TIER_AUTOPROVISION disabled
        503: Entitlement store unavailable
    """
    decision = gate.consume(customer_id)
    record = decision.record
    return ConsumeResponse(
        allowed=decision.allowed,
        remaining=decision.remaining if decision.allowed else None,
        plan=record.plan,
        message_limit=record.message_limit,
    )
