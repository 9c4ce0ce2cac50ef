"""
Error taxonomy for the recommendation pipeline.

Every stage failure is raised as one of these types. The API layer maps them
to an HTTP status with a single exception handler; ``message`` is always safe
to show to the end user, anything more detailed belongs in ``details`` and
stays in the server log.
"""

import math
from datetime import datetime
from typing import Any, Optional


class RecommendationError(Exception):
    """Base exception for recommendation pipeline failures."""

    http_status: int = 500
    error_code: str = "RECOMMENDATION_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidRequestError(RecommendationError):
    """The request body is well-formed JSON but asks for something unsupported."""

    http_status = 400
    error_code = "INVALID_REQUEST"

    def __init__(self, message: str, errors: Optional[list[str]] = None) -> None:
        super().__init__(message, details={"errors": errors or []})
        self.errors = errors or []


class InsufficientSignalError(RecommendationError):
    """The user has not rated enough books to personalise a prompt."""

    http_status = 400
    error_code = "INSUFFICIENT_SIGNAL"

    def __init__(self, rated_books: int, minimum: int) -> None:
        super().__init__(
            f"You need at least {minimum} rated books to generate recommendations.",
            details={"rated_books": rated_books, "minimum": minimum},
        )
        self.rated_books = rated_books
        self.minimum = minimum


class QuotaExceededError(RecommendationError):
    """The daily generation quota is used up until ``reset_at``."""

    http_status = 429
    error_code = "QUOTA_EXCEEDED"

    def __init__(self, limit: int, reset_at: datetime, now: datetime) -> None:
        super().__init__(
            f"Rate limit exceeded. Maximum {limit} recommendation requests per day.",
            details={"limit": limit, "reset_at": reset_at.isoformat()},
        )
        self.limit = limit
        self.reset_at = reset_at
        # whole seconds, rounded up, for the Retry-After header
        self.retry_after = max(0, math.ceil((reset_at - now).total_seconds()))


class CompletionTimeoutError(RecommendationError):
    http_status = 504
    error_code = "COMPLETION_TIMEOUT"

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            "AI service timed out. Please try again later.",
            details={"timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class UpstreamError(RecommendationError):
    """The completion provider answered with a failure status."""

    http_status = 502
    error_code = "UPSTREAM_ERROR"

    def __init__(self, status_code: Optional[int], detail: str = "") -> None:
        super().__init__(
            "AI service is currently unavailable. Please try again later.",
            details={"status_code": status_code, "detail": detail},
        )
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """True for failures worth retrying by the caller (5xx, 429, network)."""
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


class UpstreamAuthError(RecommendationError):
    """The provider rejected our credentials; an operator has to fix this."""

    http_status = 502
    error_code = "UPSTREAM_AUTH_ERROR"

    def __init__(self, detail: str = "") -> None:
        super().__init__(
            "AI service is currently unavailable. Please try again later.",
            details={"detail": detail},
        )


class MalformedResponseError(RecommendationError):
    """No usable recommendation could be extracted from the model output."""

    http_status = 500
    error_code = "MALFORMED_RESPONSE"

    def __init__(self, detail: str = "") -> None:
        super().__init__(
            "The AI service returned an unusable response. Please try again.",
            details={"detail": detail},
        )


class PipelineFailureError(RecommendationError):
    """A collaborator (library store, quota store) failed in an unexpected way."""

    http_status = 500
    error_code = "PIPELINE_FAILURE"

    def __init__(self, stage: str, detail: str = "") -> None:
        super().__init__(
            "Recommendations could not be generated. Please try again later.",
            details={"stage": stage, "detail": detail},
        )
        self.stage = stage
