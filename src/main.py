"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import error_handler_middleware
from src.api.middleware.latency_logging import latency_logging_middleware
from src.api.routes import admin, checkout, coupons, health, webhooks
from src.core.config import Settings, get_settings
from src.core.stripe import configure_stripe

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _warn_about_optional_settings(settings: Settings) -> None:
    """Log features that are switched off by missing settings."""
    if not settings.resend_api_key:
        logger.warning("RESEND_API_KEY not set; confirmation emails will fail and be noted on orders")
    if not settings.admin_password:
        logger.warning("ADMIN_PASSWORD not set; admin endpoints are disabled")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure external clients on startup.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to the application.
    """
    settings = get_settings()
    logger.info("Starting %s (%s)", settings.app_name, settings.app_env)

    configure_stripe()
    if settings.stripe_secret_key:
        logger.info("Stripe configured in %s mode", "test" if settings.is_stripe_test_mode else "live")
    _warn_about_optional_settings(settings)

    yield

    logger.info("Stopped %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="3DLab API",
        description="Workshop booking, school enrollment and payment reconciliation backend",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["*"],
    )
    # Added last runs first: latency logging wraps the error handler so it
    # logs the status code clients actually receive.
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)
    app.add_middleware(BaseHTTPMiddleware, dispatch=latency_logging_middleware)

    app.include_router(health.router)

    api_v1 = APIRouter(prefix="/api/v1")
    for module in (checkout, coupons, webhooks, admin):
        api_v1.include_router(module.router)
    app.include_router(api_v1)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
