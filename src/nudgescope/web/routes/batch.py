"""Batch run control routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from nudgescope.web.deps import get_services

router = APIRouter()


@router.post("/run")
def run_batch(services=Depends(get_services)):
    """Start a backlog run in the background."""
    coordinator = services.coordinator
    if coordinator.is_running() or not coordinator.submit_backlog():
        return {"status": "already_running", "message": "Batch analysis is already running."}
    return {"status": "started", "message": "Batch analysis started."}


@router.post("/stop")
def stop_batch(services=Depends(get_services)):
    """Ask the active run to stop after its current record."""
    if services.coordinator.request_stop():
        return {"status": "stop_requested", "message": "Stop request sent."}
    return {"status": "idle", "message": "No batch analysis is running."}
