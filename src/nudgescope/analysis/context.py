"""Render retrieved reference cases into a bounded prompt fragment."""

from __future__ import annotations

from nudgescope.storage.models import SimilarityMatch

NO_REFERENCE_CASES = "참고 사례 없음"
CONTEXT_HEADER = "참고사례:"
MAX_REFERENCE_CASES = 3
DEFAULT_EXCERPT_CHARS = 200


def truncate(text: str, limit: int) -> str:
    """Cut `text` to `limit` characters, marking the cut with an ellipsis."""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def build_context(
    matches: list[SimilarityMatch],
    excerpt_chars: int = DEFAULT_EXCERPT_CHARS,
) -> str:
    """Number the first three matches in input order.

    Each line carries an excerpt of the prior transcript and, when the match
    was indexed with one, its prior analysis result.
    """
    if not matches:
        return NO_REFERENCE_CASES

    lines = [CONTEXT_HEADER]
    for i, match in enumerate(matches[:MAX_REFERENCE_CASES], start=1):
        line = f"{i}) {truncate(match.content or '', excerpt_chars)}"
        if match.analysis_result:
            line += f" -> {match.analysis_result}"
        lines.append(line)

    return "\n".join(lines) + "\n"
