"""FastAPI application factory for the NudgeScope control API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from nudgescope.batch.scheduler import FixedDelayScheduler
from nudgescope.exceptions import NudgeScopeError, TranscriptNotFoundError

logger = logging.getLogger(__name__)


def create_app(services, schedule: bool = False, interval: float | None = None) -> FastAPI:
    """Create the API around an already-built set of pipeline components.

    With `schedule`, a FixedDelayScheduler drives the same coordinator as the
    run endpoint for the lifetime of the app.
    """
    scheduler = None
    if schedule:
        delay = interval if interval is not None else services.settings.schedule_interval
        scheduler = FixedDelayScheduler(services.coordinator, interval=delay)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if scheduler is not None:
            scheduler.start()
        yield
        if scheduler is not None:
            scheduler.stop(timeout=5)
        services.coordinator.shutdown(wait=False)

    app = FastAPI(title="NudgeScope", docs_url="/docs", redoc_url=None, lifespan=lifespan)
    app.state.services = services
    app.state.scheduler = scheduler

    @app.exception_handler(TranscriptNotFoundError)
    async def not_found(request: Request, exc: TranscriptNotFoundError):
        return JSONResponse(
            status_code=404,
            content={"error": "NOT_FOUND", "message": exc.message},
        )

    @app.exception_handler(NudgeScopeError)
    async def analysis_error(request: Request, exc: NudgeScopeError):
        logger.error(f"Error while handling {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "ANALYSIS_ERROR", "message": exc.message},
        )

    from nudgescope.web.routes import register_routes

    register_routes(app)

    return app
