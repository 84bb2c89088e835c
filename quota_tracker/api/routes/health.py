from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from quota_tracker.core.config import settings
from quota_tracker.core.rate_limit import get_quota_tracker

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/store")
async def store_health_check() -> JSONResponse:
    """Readiness check for the throttle store.

    Returns 503 when the store does not answer a ping, since every guarded
    route would fail (or fail open) in that state.
    """

    reachable = await get_quota_tracker().ping()
    return JSONResponse(
        status_code=200 if reachable else 503,
        content={
            "status": "ok" if reachable else "unavailable",
            "backend": settings.throttle.backend,
        },
    )
