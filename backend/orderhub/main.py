"""FastAPI application entrypoint.

Configures logging, Sentry, CORS and error handlers, includes the webhook
routers, and exposes a healthcheck endpoint.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .deps import get_settings

logging.basicConfig(level=get_settings().LOG_LEVEL.upper())
logger = logging.getLogger(__name__)

from .database import dispose_engine, init_engine
from .errors import register_exception_handlers
from .routers import customer_webhooks as customer_webhooks_router
from .routers import order_webhooks as order_webhooks_router
from .telemetry import init_sentry
from . import schemas

# Import models so Alembic can discover metadata
from . import models  # noqa: F401


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the pooled engine on startup and drain it on shutdown."""
    init_engine()
    yield
    dispose_engine()


def create_app() -> FastAPI:
    settings = get_settings()
    init_sentry()

    app = FastAPI(
        title="orderhub API",
        description="""
        orderhub ingests storefront webhooks into the seller CRM.

        This API provides endpoints for:
        - Shopify / WooCommerce order webhooks (HMAC-signed)
        - Generic customer webhook (bearer webhook secret)

        ## Idempotency

        Redelivering the same order webhook updates the stored order; it never
        creates a second order, customer or CRM lead.
        """,
        version="1.0.0",
        lifespan=lifespan,
    )

    # Trust X-Forwarded-* from the load balancer so request.url reflects https
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    logger.info(f"[CORS] Allowed origins: {settings.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(order_webhooks_router.router)  # POST /webhook/orders
    app.include_router(customer_webhooks_router.router)  # POST /webhooks/customer

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="Liveness probe for load balancers; does not touch the database.",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    return app


app = create_app()
