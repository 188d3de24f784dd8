"""Bounded retry with backoff, returning tagged results instead of raising."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    kind: str  # "exhausted" or "fatal"
    error: BaseException
    attempts: int

    @property
    def ok(self) -> bool:
        return False


RetryResult = Union[Success, Failure]


def linear_backoff(base_delay: float) -> Callable[[int], float]:
    """Delay of base_delay x attempt number (1s, 2s, 3s...)."""
    return lambda attempt: base_delay * attempt


def _always_retry(error: BaseException) -> bool:
    return True


@dataclass
class RetryPolicy:
    """How often to retry a call and how long to wait in between.

    `is_retryable` decides whether an error is worth another attempt; a
    non-retryable error ends the loop at once with a "fatal" failure.
    """

    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=lambda: linear_backoff(1.0))
    is_retryable: Callable[[BaseException], bool] = _always_retry
    sleep: Callable[[float], None] = time.sleep
    label: str = "call"

    def run(self, fn: Callable[[], T]) -> RetryResult:
        last_error: BaseException | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return Success(fn(), attempts=attempt)
            except Exception as e:
                last_error = e
                if not self.is_retryable(e):
                    logger.warning(f"{self.label} failed with non-retryable error: {e}")
                    return Failure("fatal", e, attempt)
                if attempt == self.max_attempts:
                    break
                wait = self.backoff(attempt)
                logger.warning(
                    f"{self.label} failed (attempt {attempt}/{self.max_attempts}): {e}. "
                    f"Retrying in {wait}s..."
                )
                self.sleep(wait)

        logger.warning(f"{self.label} failed after {self.max_attempts} attempts: {last_error}")
        return Failure("exhausted", last_error, self.max_attempts)
