"""
FastAPI application for the assessment engine.

The host owns the store: it is connected on startup and closed on shutdown,
and the engine built on top of it is attached to ``app.state``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .database import Store
from .engine import AssessmentEngine
from .errors import (
    AttemptExpiredError,
    DuplicateAssignmentError,
    DuplicateAttemptError,
    EngineError,
    InvalidStateError,
    NotEligibleError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .logging_config import configure_logging
from .routers import attempts, collaborations, exams

logger = logging.getLogger(__name__)

STATUS_CODES = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (NotEligibleError, 403),
    (DuplicateAttemptError, 409),
    (DuplicateAssignmentError, 409),
    (AttemptExpiredError, 409),
    (InvalidStateError, 409),
]


def status_for(exc: EngineError) -> int:
    for error_cls, status in STATUS_CODES:
        if isinstance(exc, error_cls):
            return status
    return 500


def create_app(settings: Optional[Settings] = None, store: Optional[Store] = None, engine=None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    store = store or Store(settings.database_url, echo=settings.echo_sql)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not store.is_connected:
            store.connect()
        app.state.engine = engine or AssessmentEngine(store, settings=settings)
        yield
        store.close()

    app = FastAPI(
        title=settings.app_name,
        description="Exam definition, assignment, attempts, scoring and analytics",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError):
        status = status_for(exc)
        if status >= 500:
            logger.error("Unmapped engine error on %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=status, content={"error": exc.code, "detail": exc.message})

    app.include_router(exams.router, tags=["Exams"])
    app.include_router(attempts.router, tags=["Attempts"])
    app.include_router(collaborations.router, tags=["Collaboration"])

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "database": store.is_connected}

    return app
