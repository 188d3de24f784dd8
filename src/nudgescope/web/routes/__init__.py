"""Route registration for the NudgeScope API."""

from __future__ import annotations

from fastapi import FastAPI


def register_routes(app: FastAPI):
    """Include all route modules."""
    from nudgescope.web.routes import analysis, batch, index, metrics, status

    app.include_router(batch.router, prefix="/batch")
    app.include_router(status.router)
    app.include_router(analysis.router)
    app.include_router(metrics.router, prefix="/metrics")
    app.include_router(index.router, prefix="/index")
