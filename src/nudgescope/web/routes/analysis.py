"""On-demand analysis routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from nudgescope.web.deps import get_db, get_repo, get_services

router = APIRouter()


class TestAnalyzeRequest(BaseModel):
    consultationContent: str = ""


@router.post("/analyze/{consultation_number}")
def analyze_consultation(consultation_number: str, services=Depends(get_services)):
    """Analyze one stored transcript now, whatever its status."""
    success = services.coordinator.run_one(consultation_number)
    with get_db(services) as db:
        record = get_repo(db).get_transcript(consultation_number)
    return {
        "status": "success" if success else "failed",
        "consultationNumber": consultation_number,
        "analysisStatus": record.analysis_status.value,
        "result": record.result_dict if success else None,
    }


@router.post("/test-analyze")
def test_analyze(body: TestAnalyzeRequest, services=Depends(get_services)):
    """Analyze raw text without storing anything."""
    if not body.consultationContent.strip():
        raise HTTPException(status_code=400, detail="consultationContent is required")
    return services.analyzer.analyze_text(body.consultationContent).to_dict()
