"""
Event reconciler.

Turns verified checkout-completion events into entitlement upserts:

1. Verify signature (AuthenticityError on failure, nothing written)
2. Ignore event types other than checkout.session.completed
3. Extract price and customer identifiers from the session
4. Resolve the price through the plan catalog
5. Upsert the entitlement record (usage kept on plan change)

Everything other than an authenticity failure or a storage outage is
acknowledged, so the provider stops redelivering events we cannot use.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from quotarelay.core.logging import log_event
from quotarelay.features.billing.checkout import METADATA_PRICE_ID, METADATA_USER_ID
from quotarelay.features.billing.provider import PaymentEvent, PaymentProvider, VerifiedEvent
from quotarelay.features.entitlements.store import (
    CHECKOUT_COMPLETED,
    ApplyStatus,
    EntitlementRecord,
    EntitlementStore,
)
from quotarelay.features.plans.catalog import PlanCatalog


class ReconcileStatus(str, Enum):
    APPLIED = "APPLIED"
    DUPLICATE = "DUPLICATE"
    IGNORED = "IGNORED"


@dataclass(frozen=True)
class ReconcileOutcome:
    status: ReconcileStatus
    event: PaymentEvent
    reason: Optional[str] = None
    record: Optional[EntitlementRecord] = None


def _first_price(items: Any) -> Optional[str]:
    if isinstance(items, dict):
        items = items.get("data")
    if not isinstance(items, list) or not items:
        return None
    first = items[0]
    if not isinstance(first, dict):
        return None
    price = first.get("price")
    if isinstance(price, dict):
        return price.get("id")
    if isinstance(price, str):
        return price
    return None


def extract_price_id(session: Dict[str, Any]) -> Optional[str]:
    """
    Purchased price ID, preferring a direct line-item reference.

    Order: line_items, legacy display_items, metadata.price_id,
    legacy metadata.priceId.
    """
    price_id = _first_price(session.get("line_items")) or _first_price(session.get("display_items"))
    if price_id:
        return price_id
    metadata = session.get("metadata") or {}
    return metadata.get(METADATA_PRICE_ID) or metadata.get("priceId") or None


def extract_customer_id(session: Dict[str, Any]) -> Optional[str]:
    """Our user ID from checkout metadata, else client_reference_id, else the Stripe customer."""
    metadata = session.get("metadata") or {}
    customer = session.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")
    return (
        metadata.get(METADATA_USER_ID)
        or session.get("client_reference_id")
        or customer
        or None
    )


def to_payment_event(verified: VerifiedEvent) -> PaymentEvent:
    if verified.event_type != CHECKOUT_COMPLETED:
        return PaymentEvent(
            event_id=verified.event_id,
            type=verified.event_type,
            customer_id=None,
            price_id=None,
        )
    return PaymentEvent(
        event_id=verified.event_id,
        type=verified.event_type,
        customer_id=extract_customer_id(verified.data),
        price_id=extract_price_id(verified.data),
    )


class EventReconciler:
    def __init__(self, provider: PaymentProvider, catalog: PlanCatalog, store: EntitlementStore):
        self.provider = provider
        self.catalog = catalog
        self.store = store

    def handle(self, payload: bytes, signature: Optional[str]) -> ReconcileOutcome:
        """
        Process one webhook delivery.

        Raises:
            AuthenticityError: Signature or payload rejected by the verifier
            StorageUnavailable: Store unreachable; the delivery should be retried
        """
        verified = self.provider.verify_event(payload, signature)
        event = to_payment_event(verified)

        log_event("info", "[billing] event received", event_type=event.type, extra={"event_id": event.event_id})

        if event.type != CHECKOUT_COMPLETED:
            return self._ignore(event, "unhandled_event_type")
        if not event.price_id:
            return self._ignore(event, "no_price_id")
        if not event.customer_id:
            return self._ignore(event, "no_customer_id")

        plan = self.catalog.lookup(event.price_id)
        if plan is None:
            return self._ignore(event, "unknown_price_id")

        outcome = self.store.apply_plan(
            event.customer_id,
            plan,
            event_id=event.event_id or None,
            event_type=event.type,
        )

        if outcome.status == ApplyStatus.DUPLICATE:
            log_event(
                "info",
                "[billing] duplicate event skipped",
                customer_id=event.customer_id,
                event_type=event.type,
                extra={"event_id": event.event_id},
            )
            return ReconcileOutcome(ReconcileStatus.DUPLICATE, event)

        log_event(
            "info",
            "[billing] entitlement applied",
            customer_id=event.customer_id,
            event_type=event.type,
            extra={
                "event_id": event.event_id,
                "plan": plan.name,
                "message_limit": plan.message_limit,
            },
        )
        return ReconcileOutcome(ReconcileStatus.APPLIED, event, record=outcome.record)

    def _ignore(self, event: PaymentEvent, reason: str) -> ReconcileOutcome:
        log_event(
            "info",
            "[billing] event ignored",
            customer_id=event.customer_id,
            event_type=event.type,
            extra={"event_id": event.event_id, "reason": reason, "price_id": event.price_id},
        )
        return ReconcileOutcome(ReconcileStatus.IGNORED, event, reason=reason)
