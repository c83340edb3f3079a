"""
Billing API routes.

Minimal surface:
- POST /checkout-sessions: Create checkout session
- POST /payment-events: Handle Stripe webhooks
- GET  /plans: List purchasable plans
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.concurrency import run_in_threadpool

from quotarelay.api.deps import get_catalog, get_checkout, get_reconciler
from quotarelay.features.billing.checkout import CheckoutInitiator
from quotarelay.features.billing.reconciler import EventReconciler
from quotarelay.features.plans.catalog import PlanCatalog


router = APIRouter(tags=["billing"])


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckoutRequest(CamelModel):
    """Request to create checkout session."""
    price_id: str = Field(min_length=1)
    customer_email: Optional[str] = None
    external_user_id: Optional[str] = None


class CheckoutResponse(CamelModel):
    """Response with checkout URL."""
    redirect_url: str


class WebhookResponse(BaseModel):
    received: bool


class PlanResponse(CamelModel):
    price_id: str
    name: str
    message_limit: Optional[int]  # null = unlimited


@router.post("/checkout-sessions", response_model=CheckoutResponse)
def create_checkout(
    body: CheckoutRequest,
    checkout: CheckoutInitiator = Depends(get_checkout),
):
    """
    Create Stripe checkout session.

    Returns:
        {"redirectUrl": "https://checkout.stripe.com/..."}

    Errors:
        400: Missing priceId
        502: Stripe rejected the request or was unreachable
    """
    url = checkout.create_session(
        price_id=body.price_id,
        customer_email=body.customer_email,
        external_user_id=body.external_user_id,
    )
    return CheckoutResponse(redirect_url=url)


@router.post("/payment-events", response_model=WebhookResponse)
async def handle_payment_event(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    reconciler: EventReconciler = Depends(get_reconciler),
):
    """
    Handle Stripe webhook events.

    Unhandled event types, unknown prices and redeliveries are acknowledged.

    Errors:
        400: Invalid signature or payload (not retried by Stripe)
        503: Entitlement store unavailable (retried by Stripe)
    """
    # Read raw body (required for signature verification)
    body = await request.body()
    await run_in_threadpool(reconciler.handle, body, stripe_signature)
    return {"received": True}


@router.get("/plans", response_model=List[PlanResponse])
def list_plans(catalog: PlanCatalog = Depends(get_catalog)):
    return [
        PlanResponse(price_id=p.price_id, name=p.name, message_limit=p.message_limit)
        for p in catalog
    ]
