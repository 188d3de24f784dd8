"""Parse, validate and repair model output into an AnalysisResult."""

from __future__ import annotations

import json
import logging
from dataclasses import replace

from nudgescope.storage.models import AnalysisResult

logger = logging.getLogger(__name__)

ANALYSIS_FAILED_MESSAGE = "분석 실패 - 수동 확인 필요"
MISSING_INQUIRY_MESSAGE = "문의 내용 확인 필요"


def default_result() -> AnalysisResult:
    """The result used whenever a response cannot be understood."""
    return AnalysisResult(main_inquiry=ANALYSIS_FAILED_MESSAGE)


def normalize_flag(value) -> str:
    if value is None:
        return "N"
    return "Y" if str(value).strip().upper() == "Y" else "N"


def _text(value, fallback: str) -> str:
    if value is None:
        return fallback
    text = str(value).strip()
    return text if text else fallback


def normalize_result(result: AnalysisResult) -> AnalysisResult:
    """Enforce the flag and dependent-field rules. Idempotent."""
    has_nudge = normalize_flag(result.has_nudge)
    customer_response = normalize_flag(result.customer_response)
    inappropriate = normalize_flag(result.inappropriate_nudge)

    nudge_type = _text(result.nudge_type, "N")
    nudge_content = _text(result.nudge_content, "N")
    reason = _text(result.inappropriate_reason, "N")

    if has_nudge == "N":
        nudge_type = "N"
        nudge_content = "N"
        customer_response = "N"

    if inappropriate == "N":
        reason = "N"

    return replace(
        result,
        main_inquiry=_text(result.main_inquiry, MISSING_INQUIRY_MESSAGE),
        has_nudge=has_nudge,
        nudge_type=nudge_type,
        nudge_content=nudge_content,
        customer_response=customer_response,
        inappropriate_nudge=inappropriate,
        inappropriate_reason=reason,
    )


def extract_json_object(text: str) -> str:
    """Slice from the first '{' to the last '}'.

    Tolerates commentary and code fences around the payload.
    """
    text = text.strip()
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError(f"No JSON object found in response: {text[:200]}")
    return text[start : end + 1]


def parse_response(raw_text: str | None) -> AnalysisResult:
    """Turn raw model text into a normalized result. Never raises."""
    try:
        payload = json.loads(extract_json_object(raw_text or ""))
    except (ValueError, RecursionError) as e:
        logger.error(f"Failed to parse analysis response: {type(e).__name__}: {str(e)[:200]}")
        return default_result()

    if not isinstance(payload, dict):
        logger.error(f"Analysis response is not a JSON object: {type(payload).__name__}")
        return default_result()

    try:
        return normalize_result(AnalysisResult(
            main_inquiry=payload.get("mainInquiry"),
            has_nudge=payload.get("hasNudge"),
            nudge_type=payload.get("nudgeType"),
            nudge_content=payload.get("nudgeContent"),
            customer_response=payload.get("customerResponse"),
            inappropriate_nudge=payload.get("inappropriateNudge"),
            inappropriate_reason=payload.get("inappropriateReason"),
        ))
    except RecursionError as e:
        # Deeply nested field values cannot be turned into text
        logger.error(f"Analysis response fields are too deeply nested: {e}")
        return default_result()
