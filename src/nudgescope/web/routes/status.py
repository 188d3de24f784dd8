"""Status and backlog routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from nudgescope.storage.models import TranscriptRecord
from nudgescope.web.deps import get_db, get_repo, get_services

router = APIRouter()


def _iso(value) -> str | None:
    return value.isoformat(sep=" ") if value else None


def record_to_dict(record: TranscriptRecord) -> dict:
    return {
        "consultationNumber": record.consultation_number,
        "consultant": record.consultant,
        "consultationContent": record.content,
        "consultationTime": _iso(record.consultation_time),
        "analysisStatus": record.analysis_status.value,
        "analysisDate": _iso(record.analysis_date),
    }


@router.get("/status")
def get_status(services=Depends(get_services)):
    """Counts per analysis status and whether a run is active."""
    with get_db(services) as db:
        summary = get_repo(db).get_status_summary()
    return {
        "totalCount": summary["total"],
        "pendingCount": summary["pending"],
        "processingCount": summary["processing"],
        "completedCount": summary["completed"],
        "failedCount": summary["failed"],
        "completionRate": summary["completion_rate"],
        "isProcessing": services.coordinator.is_busy(),
        "runState": services.coordinator.state.value,
    }


@router.get("/pending")
def get_pending(
    page: int = Query(0, ge=0),
    size: int = Query(50, ge=1, le=500),
    services=Depends(get_services),
):
    """PENDING transcripts, oldest first."""
    with get_db(services) as db:
        records = get_repo(db).get_pending_page(size, offset=page * size)
    return [record_to_dict(r) for r in records]
