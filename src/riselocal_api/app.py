from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from riselocal_api.core.settings import settings
from riselocal_api.db.session import engine
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Redemption engine configured",
        claim_window_minutes=settings.redemption_claim_window_minutes,
        code_max_attempts=settings.redemption_code_max_attempts,
        vendor_api_key_enabled=bool(settings.vendor_api_key),
    )
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database engine disposed")


def create_app() -> FastAPI:
    """Application factory for the Rise Local redemption API."""
    configure_logging(
        service_name=settings.otel_service_name,
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
        database_echo=settings.database_echo,
    )

    app = FastAPI(
        title="Rise Local Redemption API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name=settings.otel_service_name,
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
