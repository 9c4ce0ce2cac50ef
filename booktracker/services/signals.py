"""Reduces a user's rating history to a prompt context."""

import logging
from datetime import datetime, timezone

from booktracker.domain.entities import PromptContext, RatingSignal
from booktracker.domain.errors import InsufficientSignalError
from booktracker.ports.library import LibraryPort

logger = logging.getLogger(__name__)


def _recency_key(signal: RatingSignal) -> datetime:
    if signal.rated_at is None:
        return datetime.min
    if signal.rated_at.tzinfo is not None:
        return signal.rated_at.astimezone(timezone.utc).replace(tzinfo=None)
    return signal.rated_at


class SignalAggregator:
    """Builds the ``PromptContext`` for one generation call."""

    def __init__(
        self,
        library: LibraryPort,
        min_rated_books: int = 3,
        max_signals: int = 20,
    ) -> None:
        self._library = library
        self._min_rated = min_rated_books
        self._max_signals = max_signals

    @property
    def min_rated_books(self) -> int:
        return self._min_rated

    async def count_rated(self, user_id: str) -> int:
        """Number of usable (score > 0) ratings the user has."""
        return len(await self._rated(user_id))

    async def _rated(self, user_id: str) -> list[RatingSignal]:
        signals = await self._library.get_rated_books(user_id)
        return [s for s in signals if s.score > 0]

    async def build_context(self, user_id: str, requested_count: int) -> PromptContext:
        """
        Collect signals, preferences and owned titles for ``user_id``.

        Raises InsufficientSignalError when fewer than ``min_rated_books``
        ratings exist. Keeps the ``max_signals`` most recently rated books.
        """
        rated = await self._rated(user_id)
        if len(rated) < self._min_rated:
            raise InsufficientSignalError(len(rated), self._min_rated)

        # sorted() is stable, so equal timestamps keep the store's order
        recent = sorted(rated, key=_recency_key, reverse=True)[: self._max_signals]
        preferences = await self._library.get_preferences(user_id)
        owned = await self._library.get_library_titles(user_id)

        logger.info(
            "Aggregated %d of %d rated books for user %s (%d owned titles)",
            len(recent),
            len(rated),
            user_id,
            len(owned),
        )
        return PromptContext(
            user_id=user_id,
            signals=tuple(recent),
            requested_count=requested_count,
            preferred_genres=preferences.genres,
            preferred_themes=preferences.themes,
            favorite_authors=preferences.authors,
            already_owned=tuple(owned),
        )
