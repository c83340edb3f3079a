"""FastAPI dependencies: components built by create_app live on app.state."""

from fastapi import Request

from quotarelay.features.billing.checkout import CheckoutInitiator
from quotarelay.features.billing.reconciler import EventReconciler
from quotarelay.features.entitlements.gate import UsageGate
from quotarelay.features.entitlements.store import EntitlementStore
from quotarelay.features.plans.catalog import PlanCatalog


def get_store(request: Request) -> EntitlementStore:
    return request.app.state.store


def get_catalog(request: Request) -> PlanCatalog:
    return request.app.state.catalog


def get_usage_gate(request: Request) -> UsageGate:
    return request.app.state.usage_gate


def get_checkout(request: Request) -> CheckoutInitiator:
    return request.app.state.checkout


def get_reconciler(request: Request) -> EventReconciler:
    return request.app.state.reconciler
