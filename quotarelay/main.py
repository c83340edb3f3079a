import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from quotarelay.api import billing, entitlements, health
from quotarelay.core.config import Settings, settings
from quotarelay.core.database import create_db_engine, create_all_tables
from quotarelay.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from quotarelay.core.logging import configure_logging
from quotarelay.core.middleware.request_id import RequestIdMiddleware
from quotarelay.core.validation import validate_env
from quotarelay.features.billing.checkout import CheckoutInitiator
from quotarelay.features.billing.provider import PaymentProvider
from quotarelay.features.billing.reconciler import EventReconciler
from quotarelay.features.billing.stripe_provider import StripeProvider
from quotarelay.features.entitlements.gate import UsageGate, free_tier_plan
from quotarelay.features.entitlements.store import EntitlementStore, SqlEntitlementStore
from quotarelay.features.plans.catalog import PlanCatalog, load_catalog


def create_app(
    settings_obj: Optional[Settings] = None,
    *,
    store: Optional[EntitlementStore] = None,
    provider: Optional[PaymentProvider] = None,
    catalog: Optional[PlanCatalog] = None,
) -> FastAPI:
    """
    Build the application.

    Configuration is validated first; a missing secret raises
    EnvValidationError here rather than failing individual requests.
    Pass store/provider/catalog to replace the production components.
    """
    cfg = settings_obj or settings
    configure_logging(cfg.ENV)
    validate_env(settings_obj=cfg)

    engine = None
    if store is None:
        engine = create_db_engine(cfg.DATABASE_URL)
        store = SqlEntitlementStore(engine)
    if provider is None:
        provider = StripeProvider(
            secret_key=cfg.STRIPE_SECRET_KEY,
            webhook_secret=cfg.STRIPE_WEBHOOK_SECRET,
            timeout=cfg.STRIPE_TIMEOUT_SECONDS,
            tolerance=cfg.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
    if catalog is None:
        catalog = load_catalog(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger = logging.getLogger("quotarelay")
        logger.info("Starting quotarelay...", extra={"plans": len(catalog)})
        if engine is not None:
            create_all_tables(engine)
        try:
            yield
        finally:
            if engine is not None:
                engine.dispose()
            logger.info("Stopping quotarelay...")

    app = FastAPI(title="quotarelay", lifespan=lifespan)

    app.state.settings = cfg
    app.state.store = store
    app.state.catalog = catalog
    app.state.usage_gate = UsageGate(
        store,
        free_plan=free_tier_plan(cfg),
        autoprovision=cfg.FREE_TIER_AUTOPROVISION,
    )
    app.state.checkout = CheckoutInitiator(provider, cfg.PUBLIC_BASE_URL)
    app.state.reconciler = EventReconciler(provider, catalog, store)

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(billing.router)
    app.include_router(entitlements.router)
    app.include_router(health.router)

    return app


def main() -> None:
    uvicorn.run(
        "quotarelay.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
    )


if __name__ == "__main__":
    main()
