"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests and services embedding the throttle guard build the same stack.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from quota_tracker.api.routes import health_router
from quota_tracker.core.config import settings
from quota_tracker.core.exception_handlers import setup_exception_handlers
from quota_tracker.core.logging import configure_logging
from quota_tracker.core.middleware import request_id_middleware
from quota_tracker.core.rate_limit import close_quota_tracker


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # The store client is bound to this event loop
    await close_quota_tracker()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Quota Tracker",
        description=(
            "Shared budget tracking for a rate-limited remote API. Routes that "
            "depend on enforce_throttle reserve budget per tenant and answer "
            "429 with Retry-After when it is exhausted."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=lifespan,
    )

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)
    app.include_router(health_router)

    return app
