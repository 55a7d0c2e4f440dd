"""FastAPI application entry point for the retention intervention engine."""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from retention.api.middleware.error_handler import (
    global_exception_handler,
    validation_exception_handler,
)
from retention.api.middleware.logging import StructuredLoggingMiddleware
from retention.api.routes.cron import router as cron_router
from retention.api.routes.health import router as health_router
from retention.api.routes.interventions import router as interventions_router
from retention.api.routes.logs import router as logs_router
from retention.api.routes.members import router as members_router
from retention.api.routes.plays import router as plays_router
from retention.api.routes.webhooks import router as webhooks_router
from retention.config import settings
from retention.db.database import create_engine, create_session_factory, init_db
from retention.domains.interventions.channels import build_channel_registry
from retention.domains.interventions.config import EngineConfig
from retention.domains.interventions.engine import InterventionEngine
from retention.domains.interventions.state import InvalidTransitionError
from retention.shared.logging import setup_logging

logger = structlog.get_logger()

# Track app start time for uptime calculation
APP_START_TIME: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build the database and engine, dispose on shutdown."""
    global APP_START_TIME
    APP_START_TIME = time.time()
    setup_logging(settings.log_level)

    logger.info(
        "retention_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )

    db_engine = create_engine(settings.database_url, echo=settings.debug)
    await init_db(db_engine)
    session_factory = create_session_factory(db_engine)

    app.state.db_engine = db_engine
    app.state.session_factory = session_factory
    app.state.engine = InterventionEngine(
        session_factory=session_factory,
        config=EngineConfig.from_settings(settings),
        registry=build_channel_registry(settings),
    )

    yield

    await db_engine.dispose()
    logger.info("retention_shutting_down")


app = FastAPI(
    title="Retention Intervention Engine",
    description="Member commitment scoring and retention outreach for gyms",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Structured logging middleware
app.add_middleware(StructuredLoggingMiddleware)

# Exception handlers
app.add_exception_handler(RequestValidationError, validation_exception_handler)
for exc_class in (InvalidTransitionError, ValueError, PermissionError, LookupError, Exception):
    app.add_exception_handler(exc_class, global_exception_handler)

# Register routers
app.include_router(health_router)
app.include_router(cron_router)
app.include_router(interventions_router)
app.include_router(logs_router)
app.include_router(webhooks_router)
app.include_router(plays_router)
app.include_router(members_router)


def get_uptime() -> int:
    """Get application uptime in seconds."""
    if APP_START_TIME == 0.0:
        return 0
    return int(time.time() - APP_START_TIME)
