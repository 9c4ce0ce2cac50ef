"""Library port: read-only view of a user's books, ratings and preferences."""

from abc import ABC, abstractmethod

from booktracker.domain.entities import Preferences, RatingSignal


class LibraryPort(ABC):
    """Abstraction over the book/rating/preference store."""

    @abstractmethod
    async def get_rated_books(self, user_id: str) -> list[RatingSignal]:
        """Return every rated book (score > 0) owned by the user."""
        ...

    @abstractmethod
    async def get_library_titles(self, user_id: str) -> list[tuple[str, str]]:
        """Return (title, author) for every book in the user's library."""
        ...

    @abstractmethod
    async def get_preferences(self, user_id: str) -> Preferences:
        """Return stored preference lists, empty when none were saved."""
        ...
