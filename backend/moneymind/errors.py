"""Domain errors shared by the goal, budget, check-in and playbook services.

Routers translate these into HTTP responses; services never build
`HTTPException` themselves.
"""

from __future__ import annotations


class MoneyMindError(Exception):
    """Base exception for engine errors."""


class ClassificationAmbiguous(MoneyMindError):
    """Raised when an utterance cannot be mapped to exactly one target.

    Carries the candidate names so the caller can ask a clarifying question.
    No mutation has been performed when this is raised.
    """

    def __init__(self, message: str, candidates: list[str] | None = None):
        super().__init__(message)
        self.candidates = candidates or []


class ExtractionFailed(MoneyMindError):
    """Raised when structured extraction is exhausted (rules + LLM retries)."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class InvalidInput(MoneyMindError):
    """Raised for a specific offending field before anything reaches storage."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class UpstreamProviderError(MoneyMindError):
    """Raised when the LLM provider failed or timed out after its retry."""


class PlaybookRequired(MoneyMindError):
    """Raised when a programme action needs a completed interview first."""
