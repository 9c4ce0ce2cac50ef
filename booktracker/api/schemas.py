"""Pydantic request/response schemas for the recommendations API."""

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from booktracker.domain.entities import (
    CandidateRecommendation,
    EligibilityStatus,
    RecommendationBatch,
)


class CamelModel(BaseModel):
    """Serialises as camelCase, accepts either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BookRef(CamelModel):
    title: str = Field(min_length=1, max_length=500)
    author: str = Field(min_length=1, max_length=300)


class RecommendationRequest(BaseModel):
    """Body of POST /api/recommendations/generate."""

    model_config = ConfigDict(populate_by_name=True)

    requested_count: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("requestedCount", "count", "requested_count"),
        description="Number of recommendations (1..max). Defaults server-side.",
    )
    previous_recommendations: list[BookRef] = Field(
        default_factory=list,
        max_length=200,
        validation_alias=AliasChoices("previousRecommendations", "previous_recommendations"),
        description="Books from earlier batches still on screen; never recommended again.",
    )


class RecommendationItem(CamelModel):
    title: str
    author: str
    genre: Optional[str] = None
    reason: str
    confidence_score: float

    @classmethod
    def from_candidate(cls, candidate: CandidateRecommendation) -> "RecommendationItem":
        return cls(
            title=candidate.title,
            author=candidate.author,
            genre=candidate.genre,
            reason=candidate.reason,
            confidence_score=candidate.confidence_score,
        )


class RecommendationsResponse(CamelModel):
    recommendations: list[RecommendationItem]
    generated_at: datetime
    books_analyzed: int

    @classmethod
    def from_batch(cls, batch: RecommendationBatch) -> "RecommendationsResponse":
        return cls(
            recommendations=[RecommendationItem.from_candidate(c) for c in batch.recommendations],
            generated_at=batch.generated_at,
            books_analyzed=batch.books_analyzed,
        )


class RecommendationStatusResponse(CamelModel):
    eligible: bool
    rated_books: int
    minimum_rated_books: int
    remaining: int
    reset_at: datetime

    @classmethod
    def from_status(cls, status: EligibilityStatus) -> "RecommendationStatusResponse":
        return cls(
            eligible=status.eligible,
            rated_books=status.rated_books,
            minimum_rated_books=status.minimum_rated_books,
            remaining=status.quota.remaining,
            reset_at=status.quota.reset_at,
        )


class ErrorResponse(CamelModel):
    message: str
    errors: Optional[list[str]] = None
    trace_id: Optional[str] = None
