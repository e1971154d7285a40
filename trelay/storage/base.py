"""
Storage contracts for trelay.

Purpose:
    Define the small, stable contracts that every backend (in-memory,
    PostgreSQL) implements, so the lifecycle and analytics services never
    depend on where data lives.

Shared rules:
    - A missing row is reported with `LinkNotFound`, distinct from any other failure.
    - A slug claimed by another non-deleted link is reported at insert time
      with `SlugTaken`; backends enforce this atomically.
    - Click counting and burning are single atomic statements, never
      read-then-write.
    - Everything else surfaces as `StorageError`.

Testing & Coverage:
    These are abstract methods and are not executed directly in tests.
    We annotate them with `# pragma: no cover`.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List

from ..models import Click, ClickStats, DayStats, Link, MonthStats, ReferrerStats
from ..schemas import ListLinksFilter, StatsFilter


class BaseLinkStore(ABC):
    """Durable persistence for links."""

    @abstractmethod  # pragma: no cover
    def create(self, link: Link) -> Link:
        """
        Insert a link, assigning its id. Removes any soft-deleted row holding
        the same slug first.

        Raises:
            SlugTaken: The slug is held by a non-deleted link.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_by_slug(self, slug: str) -> Link:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_by_id(self, link_id: int) -> Link:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def update(self, link: Link) -> None:
        """Persist mutable fields (url, domain, password, expiry, tags, folder, updated_at)."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def delete(self, slug: str, when: datetime) -> None:
        """Soft delete. A link that is already deleted counts as not found."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def hard_delete(self, slug: str) -> None:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def restore(self, slug: str, when: datetime) -> None:
        """Clear deleted_at. A link that is not deleted counts as not found."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def list(self, link_filter: ListLinksFilter) -> List[Link]:
        """Matching links, newest first, honoring limit/offset."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def count(self, link_filter: ListLinksFilter) -> int:
        """Number of matching links, ignoring limit/offset."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def slug_exists(self, slug: str) -> bool:
        """True if a non-deleted link holds the slug."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def increment_click_count(self, link_id: int) -> None:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def burn(self, link_id: int, when: datetime) -> None:
        """
        Soft-delete by id, only if not already deleted.

        Raises:
            LinkNotFound: No such id.
            LinkDeleted: Already deleted or burned (lost a concurrent race).
        """
        raise NotImplementedError


class BaseClickStore(ABC):
    """Persistence and aggregation of click events."""

    @abstractmethod  # pragma: no cover
    def record(self, click: Click) -> Click:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_stats_by_link_id(self, link_id: int, stats_filter: StatsFilter) -> ClickStats:
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_clicks_by_day(self, link_id: int, days: int) -> List[DayStats]:
        """Daily counts over the last `days` days, most recent first."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_clicks_by_month(self, link_id: int, months: int) -> List[MonthStats]:
        """Monthly counts over the last `months` months, most recent first."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_top_referrers(self, link_id: int, limit: int) -> List[ReferrerStats]:
        """Referrer counts, highest first."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def delete_by_link_id(self, link_id: int) -> int:
        """Erase every click of a link; returns the number removed."""
        raise NotImplementedError


def month_floor(now: datetime, months_back: int) -> datetime:
    """First instant of the calendar month `months_back` months before `now` (same tzinfo)."""
    y, m = divmod(now.year * 12 + (now.month - 1) - months_back, 12)
    return now.replace(year=y, month=m + 1, day=1, hour=0, minute=0, second=0, microsecond=0)


def day_floor(now: datetime, days_back: int) -> datetime:
    """Midnight `days_back` days before `now` (same tzinfo)."""
    return (now - timedelta(days=days_back)).replace(hour=0, minute=0, second=0, microsecond=0)
