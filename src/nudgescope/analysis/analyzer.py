"""Retrieval-augmented nudge analysis of a single transcript."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

from nudgescope.analysis.context import build_context, truncate
from nudgescope.analysis.normalizer import default_result, parse_response
from nudgescope.analysis.prompts import ANALYSIS_SYSTEM_PROMPT, build_user_prompt
from nudgescope.config import AnalysisSettings
from nudgescope.exceptions import CompletionError
from nudgescope.llm.client import complete_with_retry
from nudgescope.llm.retry import RetryPolicy, linear_backoff
from nudgescope.storage.models import AnalysisResult, SimilarityMatch, TranscriptRecord

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")
_WHITESPACE = re.compile(r"\s+")


def preprocess_content(content: str | None, max_chars: int = 2000) -> str:
    """Strip control characters, collapse whitespace and cap the length."""
    if content is None:
        return ""
    cleaned = _CONTROL_CHARS.sub(" ", content)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    if len(cleaned) > max_chars:
        logger.debug(f"Truncating transcript from {len(cleaned)} to {max_chars} chars")
    return truncate(cleaned, max_chars)


@dataclass
class AnalysisOutcome:
    consultation_number: str
    result: AnalysisResult
    success: bool
    elapsed_ms: int
    error: Optional[str] = None


class TranscriptAnalyzer:
    """Runs retrieve, assemble, complete and normalize for one transcript.

    `analyze` persists through the gateway; `analyze_text` only returns the
    result. Completion failures end in a FAILED record and a default result.
    Store errors propagate so the caller can retry the record.
    """

    def __init__(
        self,
        llm_client,
        gateway=None,
        retriever=None,
        settings: AnalysisSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.llm_client = llm_client
        self.gateway = gateway
        self.retriever = retriever
        self.settings = settings or AnalysisSettings()
        self.policy = RetryPolicy(
            max_attempts=self.settings.llm_max_attempts,
            backoff=linear_backoff(self.settings.llm_base_delay),
            sleep=sleep,
            label="Completion call",
        )
        self._search = lru_cache(maxsize=self.settings.similar_cache_size)(self._search_index)

    def _search_index(self, content: str) -> tuple[SimilarityMatch, ...]:
        return tuple(self.retriever.search(
            content,
            top_k=self.settings.top_k,
            similarity_threshold=self.settings.similarity_threshold,
        ))

    def clear_similar_cache(self):
        self._search.cache_clear()

    def find_similar(self, content: str) -> list[SimilarityMatch]:
        """Similar prior transcripts, or [] when the index is unavailable.

        Successful lookups are cached per content, up to
        `similar_cache_size` entries. Failed lookups are not cached.
        """
        if self.retriever is None:
            return []
        try:
            return list(self._search(content))
        except Exception as e:
            logger.warning(f"Error searching similar consultations, using empty context: {e}")
            return []

    def _complete(self, content: str) -> AnalysisResult:
        cleaned = preprocess_content(content, self.settings.max_content_chars)
        matches = self.find_similar(cleaned)
        logger.info(f"Similar documents: {len(matches)}")

        context = build_context(matches, self.settings.excerpt_chars)
        outcome = complete_with_retry(
            self.llm_client,
            system=ANALYSIS_SYSTEM_PROMPT,
            user=build_user_prompt(cleaned, context),
            policy=self.policy,
            max_tokens=self.settings.max_tokens,
        )
        if not outcome.ok:
            raise CompletionError(
                f"Completion failed after {outcome.attempts} attempts",
                details=str(outcome.error),
            )
        return parse_response(outcome.value.content)

    def analyze_text(self, content: str) -> AnalysisResult:
        """Analyze raw text without touching the store."""
        try:
            return self._complete(content)
        except CompletionError as e:
            logger.error(f"Ad-hoc analysis failed: {e}")
            return default_result()

    def analyze(self, record: TranscriptRecord) -> AnalysisOutcome:
        number = record.consultation_number
        start = time.monotonic()
        logger.info(f"Analysis started for consultation: {number}")

        self.gateway.mark_processing(record)
        try:
            result = self._complete(record.content)
        except CompletionError as e:
            elapsed = int((time.monotonic() - start) * 1000)
            logger.error(f"Analysis failed for consultation: {number} - Error: {e}")
            self.gateway.mark_failed(record)
            return AnalysisOutcome(number, default_result(), False, elapsed, str(e))

        self.gateway.save_result(record, result)
        elapsed = int((time.monotonic() - start) * 1000)
        logger.info(f"Analysis completed for consultation: {number} ({elapsed}ms)")
        return AnalysisOutcome(number, result, True, elapsed)
