"""
Health probes.

Lightweight endpoints for operational monitoring without exposing secrets.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from quotarelay.api.deps import get_store
from quotarelay.core.errors import StorageUnavailable
from quotarelay.features.entitlements.store import EntitlementStore

logger = logging.getLogger("quotarelay")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz(store: EntitlementStore = Depends(get_store)):
    """Readiness check: entitlement store connectivity."""
    try:
        store.ping()
    except StorageUnavailable as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})
    return {"status": "ok"}
