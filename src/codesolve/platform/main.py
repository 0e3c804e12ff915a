"""
Main FastAPI application entry point for the tenant billing engine.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from codesolve.platform.billing.dependencies import get_billing_engine
from codesolve.platform.billing.exceptions import BillingError
from codesolve.platform.billing.payments import HttpPaymentGateway
from codesolve.platform.billing.router import router as billing_router
from codesolve.platform.db import init_db
from codesolve.platform.settings import settings

logger = structlog.get_logger(__name__)


def billing_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render billing errors raised outside the router's own translation."""
    if not isinstance(exc, BillingError):
        raise exc
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle events."""
    logger.info(
        "service.startup.begin",
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
    )

    await init_db()
    logger.info("database.initialized")

    yield

    engine = get_billing_engine()
    if isinstance(engine.gateway, HttpPaymentGateway):
        await engine.gateway.close()
    logger.info("service.shutdown.complete")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Tenant Billing Engine",
        description="Module entitlements, proration, tenant credit and plan changes",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )

    app.add_exception_handler(BillingError, billing_error_handler)
    app.include_router(billing_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint for monitoring."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment.value,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    return app


# Create application instance
app = create_application()


# For development server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "codesolve.platform.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment.value == "development",
        log_level=settings.observability.log_level.value.lower(),
    )
