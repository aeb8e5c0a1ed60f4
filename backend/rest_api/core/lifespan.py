"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from rest_api.models import Base
from rest_api.repositories import SessionAuditLog, TableRegistry
from rest_api.seed import seed
from rest_api.services.domain import QrSessionService
from shared.config.logging import setup_logging, rest_api_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import engine, SessionLocal
from shared.infrastructure.redis import RedisManager


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    setup_logging("rest-api")

    # Validate configuration before startup
    config_errors = settings.validate_production_secrets()
    if config_errors:
        for error in config_errors:
            logger.error("Configuration error", error=error)
        if settings.is_production:
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(config_errors)}. "
                "Server will not start with insecure configuration."
            )
        logger.warning("Running with insecure defaults (acceptable for development only)")

    logger.info("Starting REST API", port=settings.rest_api_port, env=settings.environment)

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    if not settings.is_production:
        with SessionLocal() as db:
            seed(db)

    redis_manager = RedisManager.from_settings(settings)
    await redis_manager.connect()
    app.state.redis = redis_manager
    app.state.qr_service = QrSessionService(
        redis_manager.client,
        TableRegistry(SessionLocal),
        SessionAuditLog(SessionLocal),
        settings,
    )

    yield

    logger.info("Shutting down REST API")
    await redis_manager.close()
    engine.dispose()
    logger.info("Database engine disposed")
