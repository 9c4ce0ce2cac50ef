"""Domain entities for the recommendation pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class RatingSignal:
    """Snapshot of one rated book, read at request time."""

    book_id: str
    title: str
    author: str
    score: int
    genres: tuple[str, ...] = ()
    notes: Optional[str] = None
    rated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Preferences:
    """Explicit preference lists stated by the user."""

    genres: tuple[str, ...] = ()
    themes: tuple[str, ...] = ()
    authors: tuple[str, ...] = ()


@dataclass(frozen=True)
class PromptContext:
    """
    Everything the prompt builder needs for one generation call.

    Built fresh per request and discarded once the completion is issued.
    ``already_owned`` travels along so the curator can filter against it.
    """

    user_id: str
    signals: tuple[RatingSignal, ...]
    requested_count: int
    preferred_genres: tuple[str, ...] = ()
    preferred_themes: tuple[str, ...] = ()
    favorite_authors: tuple[str, ...] = ()
    already_owned: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class RawCompletion:
    """Text and token usage returned by a completion provider."""

    text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass(frozen=True)
class CandidateRecommendation:
    """A recommendation as emitted by the model, confidence in [0, 5]."""

    title: str
    author: str
    reason: str
    confidence_score: float
    genre: Optional[str] = None


@dataclass
class RecommendationBatch:
    """The unit returned to the caller; never persisted server-side."""

    recommendations: list[CandidateRecommendation]
    generated_at: datetime
    books_analyzed: int


@dataclass
class QuotaRecord:
    user_id: str
    window_start: datetime
    call_count: int = 0


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    remaining: int
    reset_at: datetime


@dataclass
class PipelineTrace:
    """Stage transitions recorded while a single request runs."""

    user_id: str
    stages: list[str] = field(default_factory=lambda: ["idle"])

    def advance(self, stage: str) -> None:
        self.stages.append(stage)

    @property
    def current(self) -> str:
        return self.stages[-1]


@dataclass(frozen=True)
class EligibilityStatus:
    """Whether a user can generate right now, without consuming quota."""

    rated_books: int
    minimum_rated_books: int
    quota: QuotaDecision

    @property
    def eligible(self) -> bool:
        return self.rated_books >= self.minimum_rated_books and self.quota.allowed
