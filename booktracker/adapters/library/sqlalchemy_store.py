"""Library adapter reading books, ratings and preferences with async SQLAlchemy."""

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booktracker.domain.entities import Preferences, RatingSignal
from booktracker.domain.models import Book, Rating, UserPreference
from booktracker.ports.library import LibraryPort

logger = logging.getLogger(__name__)


def _as_strings(value: Any) -> tuple[str, ...]:
    """Normalise a JSON list column (or a comma-separated string) to a tuple."""
    if not value:
        return ()
    items: Iterable[Any] = value.split(",") if isinstance(value, str) else value
    return tuple(str(item).strip() for item in items if item and str(item).strip())


class SqlAlchemyLibraryAdapter(LibraryPort):
    """Reads the user's library from the relational store."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_rated_books(self, user_id: str) -> list[RatingSignal]:
        result = await self._session.execute(
            select(Book, Rating)
            .join(Rating, Rating.book_id == Book.id)
            .where(Book.user_id == user_id, Rating.score > 0)
            .order_by(Rating.rated_date.desc())
        )
        signals = [
            RatingSignal(
                book_id=str(book.id),
                title=book.title,
                author=book.author,
                score=rating.score,
                genres=_as_strings(book.genres),
                notes=rating.notes or None,
                rated_at=rating.updated_date or rating.rated_date,
            )
            for book, rating in result.all()
        ]
        logger.debug("Loaded %d rated books for user %s", len(signals), user_id)
        return signals

    async def get_library_titles(self, user_id: str) -> list[tuple[str, str]]:
        result = await self._session.execute(
            select(Book.title, Book.author)
            .where(Book.user_id == user_id)
            .order_by(Book.added_date.desc())
        )
        return [(title, author) for title, author in result.all()]

    async def get_preferences(self, user_id: str) -> Preferences:
        result = await self._session.execute(
            select(UserPreference).where(UserPreference.user_id == user_id)
        )
        prefs = result.scalar_one_or_none()
        if prefs is None:
            return Preferences()
        return Preferences(
            genres=_as_strings(prefs.preferred_genres),
            themes=_as_strings(prefs.preferred_themes),
            authors=_as_strings(prefs.favorite_authors),
        )
