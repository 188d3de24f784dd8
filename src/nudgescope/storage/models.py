"""Data models for nudgescope."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class AnalysisStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Nudge types the model may report; anything else is kept verbatim
NUDGE_TYPES = (
    "생활패턴연결",
    "사회적증거",
    "손실회피",
    "개인화추천",
    "결합혜택",
    "한정혜택",
)

# Wire keys of the analysis payload, in column order (response1..response7)
RESULT_KEYS = (
    "mainInquiry",
    "hasNudge",
    "nudgeType",
    "nudgeContent",
    "customerResponse",
    "inappropriateNudge",
    "inappropriateReason",
)


@dataclass(frozen=True)
class AnalysisResult:
    main_inquiry: str
    has_nudge: str = "N"
    nudge_type: str = "N"
    nudge_content: str = "N"
    customer_response: str = "N"
    inappropriate_nudge: str = "N"
    inappropriate_reason: str = "N"

    def to_dict(self) -> dict:
        return dict(zip(RESULT_KEYS, self.as_columns()))

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def as_columns(self) -> tuple:
        return (
            self.main_inquiry,
            self.has_nudge,
            self.nudge_type,
            self.nudge_content,
            self.customer_response,
            self.inappropriate_nudge,
            self.inappropriate_reason,
        )


@dataclass
class TranscriptRecord:
    consultation_number: str
    consultant: str
    content: str
    consultation_time: datetime
    analysis_status: AnalysisStatus = AnalysisStatus.PENDING
    main_inquiry: Optional[str] = None
    has_nudge: Optional[str] = None
    nudge_type: Optional[str] = None
    nudge_content: Optional[str] = None
    customer_response: Optional[str] = None
    inappropriate_nudge: Optional[str] = None
    inappropriate_reason: Optional[str] = None
    analysis_date: Optional[datetime] = None
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None

    @property
    def result_dict(self) -> dict:
        """Stored analysis columns under their wire keys, with blanks filled."""
        return {
            "mainInquiry": self.main_inquiry or "",
            "hasNudge": self.has_nudge or "N",
            "nudgeType": self.nudge_type or "N",
            "nudgeContent": self.nudge_content or "N",
            "customerResponse": self.customer_response or "N",
            "inappropriateNudge": self.inappropriate_nudge or "N",
            "inappropriateReason": self.inappropriate_reason or "N",
        }


@dataclass
class SimilarityMatch:
    content: str
    score: float
    metadata: dict = field(default_factory=dict)

    @property
    def consultation_number(self) -> Optional[str]:
        return self.metadata.get("consultation_number")

    @property
    def analysis_result(self) -> Optional[str]:
        return self.metadata.get("analysis_result")


@dataclass
class IndexEntry:
    content: str
    consultation_number: str
    consultant: str
    analysis_result: str
    consultation_time: str

    @property
    def metadata(self) -> dict:
        return {
            "consultation_number": self.consultation_number,
            "consultant": self.consultant,
            "analysis_result": self.analysis_result,
            "consultation_time": self.consultation_time,
        }

    @classmethod
    def from_record(
        cls, record: TranscriptRecord, result: AnalysisResult | None = None
    ) -> "IndexEntry":
        """Build an entry from a record and its analysis.

        Without an explicit result the record's stored columns are used.
        """
        if result is not None:
            analysis_json = result.to_json()
        else:
            analysis_json = json.dumps(record.result_dict, ensure_ascii=False)
        return cls(
            content=record.content,
            consultation_number=record.consultation_number,
            consultant=record.consultant or "",
            analysis_result=analysis_json,
            consultation_time=record.consultation_time.isoformat(),
        )
