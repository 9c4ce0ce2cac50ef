"""Quota store port: keyed per-user call counters."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from booktracker.domain.entities import QuotaDecision


class QuotaStorePort(ABC):
    """
    Storage for per-user quota windows.

    ``try_consume`` must check and increment atomically for a given user.
    Calls for different users must not serialise on each other.
    """

    @abstractmethod
    async def try_consume(
        self,
        user_id: str,
        now: datetime,
        limit: int,
        window: timedelta,
    ) -> QuotaDecision:
        """Count one call against the user's window if it is under ``limit``."""
        ...

    @abstractmethod
    async def peek(
        self,
        user_id: str,
        now: datetime,
        limit: int,
        window: timedelta,
    ) -> QuotaDecision:
        """Report the user's window without counting a call."""
        ...

    async def aclose(self) -> None:
        return None
