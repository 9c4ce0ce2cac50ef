"""Tests for the SQLAlchemy library adapter against SQLite."""

from datetime import datetime

import pytest

from booktracker.adapters.library.sqlalchemy_store import SqlAlchemyLibraryAdapter
from booktracker.domain.models import Book, Rating, UserPreference


async def _seed(session_factory):
    async with session_factory() as session:
        dune = Book(
            user_id="u1",
            title="Dune",
            author="Frank Herbert",
            genres=["Sci-Fi", "Classic"],
            added_date=datetime(2025, 1, 1),
        )
        emma = Book(user_id="u1", title="Emma", author="Jane Austen", added_date=datetime(2025, 2, 1))
        unrated = Book(user_id="u1", title="Circe", author="Madeline Miller", added_date=datetime(2025, 3, 1))
        zero = Book(user_id="u1", title="Zero", author="Nobody", added_date=datetime(2025, 4, 1))
        other = Book(user_id="u2", title="Hyperion", author="Dan Simmons", added_date=datetime(2025, 5, 1))
        session.add_all([dune, emma, unrated, zero, other])
        await session.flush()

        session.add_all(
            [
                Rating(book_id=dune.id, score=5, notes="Epic", rated_date=datetime(2025, 6, 1)),
                Rating(
                    book_id=emma.id,
                    score=3,
                    rated_date=datetime(2025, 5, 1),
                    updated_date=datetime(2025, 7, 1),
                ),
                Rating(book_id=zero.id, score=0, rated_date=datetime(2025, 8, 1)),
                Rating(book_id=other.id, score=4, rated_date=datetime(2025, 6, 1)),
                UserPreference(
                    user_id="u1",
                    preferred_genres=["Fantasy", " Mystery "],
                    preferred_themes=[],
                    favorite_authors=["Ursula K. Le Guin"],
                ),
            ]
        )
        await session.commit()


@pytest.mark.asyncio
async def test_rated_books_exclude_zero_scores_and_other_users(session_factory):
    await _seed(session_factory)

    async with session_factory() as session:
        signals = await SqlAlchemyLibraryAdapter(session).get_rated_books("u1")

    assert {s.title for s in signals} == {"Dune", "Emma"}
    dune = next(s for s in signals if s.title == "Dune")
    assert dune.score == 5
    assert dune.genres == ("Sci-Fi", "Classic")
    assert dune.notes == "Epic"
    emma = next(s for s in signals if s.title == "Emma")
    assert emma.rated_at == datetime(2025, 7, 1)
    assert emma.genres == ()


@pytest.mark.asyncio
async def test_library_titles_include_unrated_books(session_factory):
    await _seed(session_factory)

    async with session_factory() as session:
        titles = await SqlAlchemyLibraryAdapter(session).get_library_titles("u1")

    assert titles == [
        ("Zero", "Nobody"),
        ("Circe", "Madeline Miller"),
        ("Emma", "Jane Austen"),
        ("Dune", "Frank Herbert"),
    ]


@pytest.mark.asyncio
async def test_preferences(session_factory):
    await _seed(session_factory)

    async with session_factory() as session:
        adapter = SqlAlchemyLibraryAdapter(session)
        prefs = await adapter.get_preferences("u1")
        missing = await adapter.get_preferences("u2")

    assert prefs.genres == ("Fantasy", "Mystery")
    assert prefs.themes == ()
    assert prefs.authors == ("Ursula K. Le Guin",)
    assert missing.genres == () and missing.authors == ()
