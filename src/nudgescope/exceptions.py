"""Exception types for nudgescope."""

from __future__ import annotations

from typing import Optional


class NudgeScopeError(Exception):
    """Base exception for all nudgescope errors."""

    def __init__(
        self,
        message: str,
        remediation: Optional[str] = None,
        details: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.remediation = remediation
        self.details = details

    def __str__(self) -> str:
        parts = [self.message]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.remediation:
            parts.append(f"To fix: {self.remediation}")
        return "\n".join(parts)


class ConfigError(NudgeScopeError):
    """Invalid or unreadable settings."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        remediation: Optional[str] = None,
        details: Optional[str] = None,
    ):
        self.config_key = config_key
        if not remediation and config_key:
            remediation = f"Check the value of '{config_key}' in nudgescope.json"
        super().__init__(message, remediation, details)


class TranscriptNotFoundError(NudgeScopeError, LookupError):
    """Raised when a consultation number is not in the store."""

    def __init__(self, consultation_number: str):
        self.consultation_number = consultation_number
        super().__init__(
            f"Consultation not found: {consultation_number}",
            remediation="Import the transcript first (nudgescope import)",
        )


class CompletionError(NudgeScopeError):
    """The completion service failed or gave up after retries."""


class EmptyCompletionError(CompletionError):
    """The completion service returned blank text."""

    def __init__(self):
        super().__init__("Completion service returned an empty response")
