"""Ownership filtering, deduplication and ranking of parsed candidates."""

import logging
from collections.abc import Iterable

from booktracker.domain.entities import CandidateRecommendation
from booktracker.services.parser import MAX_CONFIDENCE, MIN_CONFIDENCE

logger = logging.getLogger(__name__)


def book_key(title: str, author: str) -> tuple[str, str]:
    """Case- and whitespace-insensitive identity of a book."""
    return (" ".join(title.split()).casefold(), " ".join(author.split()).casefold())


def _clamp(candidate: CandidateRecommendation) -> CandidateRecommendation:
    score = min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, candidate.confidence_score))
    if score == candidate.confidence_score:
        return candidate
    return CandidateRecommendation(
        title=candidate.title,
        author=candidate.author,
        reason=candidate.reason,
        confidence_score=score,
        genre=candidate.genre,
    )


def curate(
    candidates: Iterable[CandidateRecommendation],
    already_owned: Iterable[tuple[str, str]],
    requested_count: int,
) -> list[CandidateRecommendation]:
    """
    Produce the final, ordered recommendation list.

    Drops owned books, keeps the highest-confidence copy of each
    (title, author), sorts by confidence (model order breaks ties) and
    truncates to ``requested_count``. A short list is returned as-is.
    """
    owned = {book_key(title, author) for title, author in already_owned}

    best: dict[tuple[str, str], tuple[int, CandidateRecommendation]] = {}
    skipped_owned = 0
    for position, candidate in enumerate(candidates):
        key = book_key(candidate.title, candidate.author)
        if key in owned:
            skipped_owned += 1
            continue
        candidate = _clamp(candidate)
        current = best.get(key)
        if current is None:
            best[key] = (position, candidate)
        elif candidate.confidence_score > current[1].confidence_score:
            best[key] = (position, candidate)

    ranked = sorted(best.values(), key=lambda item: (-item[1].confidence_score, item[0]))
    result = [candidate for _, candidate in ranked[: max(0, requested_count)]]

    if skipped_owned:
        logger.info("Curator dropped %d already-owned candidates", skipped_owned)
    return result
