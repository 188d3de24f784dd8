"""Prompt templates for nudge analysis of support-call transcripts."""

from nudgescope.storage.models import NUDGE_TYPES

NUDGE_TYPE_DESCRIPTIONS = {
    "생활패턴연결": "취미/습관 파악하여 서비스 연결",
    "사회적증거": '"다른 고객들도", "인기 상품" 등',
    "손실회피": '"손해보고 계세요", "놓치실 수 있어요"',
    "개인화추천": "고객 상황에 맞는 맞춤 제안",
    "결합혜택": "여러 서비스 묶어서 할인 강조",
    "한정혜택": "기간 한정, 특별 프로모션",
}


def _format_nudge_types() -> str:
    return "\n".join(
        f"{i}. {name}: {NUDGE_TYPE_DESCRIPTIONS[name]}"
        for i, name in enumerate(NUDGE_TYPES, start=1)
    )


ANALYSIS_SYSTEM_PROMPT = f"""\
통신사 상담에서 상담사의 넛지 활동을 분석해주세요.

=== 넛지 유형 ===
{_format_nudge_types()}

=== 부적절한 넛지 ===
- 강압적 어조
- 개인정보 남용
- 허위 정보
- 불필요한 강요

아래 JSON 형태로만 답변하세요:
{{
    "mainInquiry": "고객 문의 요약",
    "hasNudge": "Y 또는 N",
    "nudgeType": "위 6가지 중 하나 또는 N",
    "nudgeContent": "상담사 멘트 인용 또는 N",
    "customerResponse": "Y 또는 N",
    "inappropriateNudge": "Y 또는 N",
    "inappropriateReason": "이유 또는 N"
}}"""

ANALYSIS_USER_PROMPT = """\
{context}

=== 상담 내용 ===
{content}"""


def build_user_prompt(content: str, context: str) -> str:
    """Fill the user prompt with the reference cases and the transcript."""
    return ANALYSIS_USER_PROMPT.format(context=context, content=content)
