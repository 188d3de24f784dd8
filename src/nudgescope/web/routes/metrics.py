"""Throughput metrics routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from nudgescope.web.deps import get_services

router = APIRouter()


@router.get("")
def get_metrics(services=Depends(get_services)):
    return services.metrics.snapshot()


@router.post("/reset")
def reset_metrics(services=Depends(get_services)):
    services.metrics.reset()
    return {"status": "success", "message": "Metrics reset."}
