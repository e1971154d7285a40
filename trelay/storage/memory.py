"""
In-memory storage for trelay.

Responsibilities:
    - Hold links and click events for tests and single-process demos
    - Enforce slug uniqueness among non-deleted links
    - Perform increments, burns and slug claims atomically

Design:
    - Satisfies BaseLinkStore / BaseClickStore so services cannot tell it
      apart from the PostgreSQL backend.
    - One lock per store; every mutation happens under it, which gives the
      same guarantees a single SQL statement gives in the database.
    - Reads return copies so callers cannot mutate stored rows by accident.
"""

import copy
import itertools
import threading
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..errors import LinkDeleted, LinkNotFound, SlugTaken
from ..models import Click, ClickStats, Clock, DayStats, Link, MonthStats, ReferrerStats, utc_now
from ..schemas import ListLinksFilter, StatsFilter
from .base import BaseClickStore, BaseLinkStore, day_floor, month_floor


def matches_filter(link: Link, link_filter: ListLinksFilter) -> bool:
    """Filter predicate shared by list and count."""
    if link_filter.only_deleted:
        if not link.is_deleted:
            return False
    elif not link_filter.include_deleted and link.is_deleted:
        return False
    if link_filter.search:
        needle = link_filter.search.lower()
        if needle not in link.slug.lower() and needle not in link.original_url.lower():
            return False
    if link_filter.domain and link.domain != link_filter.domain:
        return False
    if link_filter.folder_id is not None and link.folder_id != link_filter.folder_id:
        return False
    if any(tag not in link.tags for tag in link_filter.tags):
        return False
    if link_filter.created_after and (link.created_at is None or link.created_at < link_filter.created_after):
        return False
    if link_filter.created_before and (link.created_at is None or link.created_at > link_filter.created_before):
        return False
    return True


class MemoryLinkStore(BaseLinkStore):
    def __init__(self):
        """
        Internal schema:
            self.links = { link_id: Link }
        """
        self.links: Dict[int, Link] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # ---- Internal helpers -------------------------------------------------

    def _find_by_slug(self, slug: str) -> Optional[Link]:
        # Prefer the live row; otherwise the most recently deleted one.
        candidates = [link for link in self.links.values() if link.slug == slug]
        if not candidates:
            return None
        candidates.sort(key=lambda link: (link.deleted_at is None, link.id or 0), reverse=True)
        return candidates[0]

    def _get(self, link_id: int) -> Link:
        link = self.links.get(link_id)
        if link is None:
            raise LinkNotFound()
        return link

    # ---- Contract methods -------------------------------------------------

    def create(self, link: Link) -> Link:
        with self._lock:
            if any(l.slug == link.slug and not l.is_deleted for l in self.links.values()):
                raise SlugTaken()
            stale = [i for i, l in self.links.items() if l.slug == link.slug and l.is_deleted]
            for link_id in stale:
                del self.links[link_id]
            stored = copy.deepcopy(link)
            stored.id = next(self._ids)
            self.links[stored.id] = stored
            return copy.deepcopy(stored)

    def get_by_slug(self, slug: str) -> Link:
        with self._lock:
            link = self._find_by_slug(slug)
            if link is None:
                raise LinkNotFound()
            return copy.deepcopy(link)

    def get_by_id(self, link_id: int) -> Link:
        with self._lock:
            return copy.deepcopy(self._get(link_id))

    def update(self, link: Link) -> None:
        with self._lock:
            stored = self._get(link.id)
            stored.original_url = link.original_url
            stored.domain = link.domain
            stored.password_hash = link.password_hash
            stored.expires_at = link.expires_at
            stored.tags = list(link.tags)
            stored.folder_id = link.folder_id
            stored.updated_at = link.updated_at

    def delete(self, slug: str, when: datetime) -> None:
        with self._lock:
            link = self._find_by_slug(slug)
            if link is None or link.is_deleted:
                raise LinkNotFound()
            link.deleted_at = when

    def hard_delete(self, slug: str) -> None:
        with self._lock:
            link = self._find_by_slug(slug)
            if link is None:
                raise LinkNotFound()
            del self.links[link.id]

    def restore(self, slug: str, when: datetime) -> None:
        with self._lock:
            link = self._find_by_slug(slug)
            if link is None or not link.is_deleted:
                raise LinkNotFound()
            link.deleted_at = None
            link.updated_at = when

    def list(self, link_filter: ListLinksFilter) -> List[Link]:
        with self._lock:
            found = [l for l in self.links.values() if matches_filter(l, link_filter)]
            # Newest first; id breaks ties between links created in the same instant.
            found.sort(key=lambda l: (l.created_at is not None, l.created_at, l.id or 0), reverse=True)
            start = max(0, link_filter.offset)
            end = start + link_filter.limit if link_filter.limit > 0 else None
            return copy.deepcopy(found[start:end])

    def count(self, link_filter: ListLinksFilter) -> int:
        with self._lock:
            return sum(1 for l in self.links.values() if matches_filter(l, link_filter))

    def slug_exists(self, slug: str) -> bool:
        with self._lock:
            return any(l.slug == slug and not l.is_deleted for l in self.links.values())

    def increment_click_count(self, link_id: int) -> None:
        with self._lock:
            self._get(link_id).click_count += 1

    def burn(self, link_id: int, when: datetime) -> None:
        with self._lock:
            link = self._get(link_id)
            if link.is_deleted:
                raise LinkDeleted()
            link.deleted_at = when


class MemoryClickStore(BaseClickStore):
    """
    Click events kept in a list per link.

    Args:
        clock (Optional[Clock]): Source of "now" for the time-bucketed queries.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clicks: Dict[int, List[Click]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._clock = clock or utc_now

    def _window(self, link_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Click]:
        return [
            c for c in self.clicks.get(link_id, [])
            if (start is None or c.timestamp >= start) and (end is None or c.timestamp <= end)
        ]

    @staticmethod
    def _by_day(clicks: Iterable[Click], since: datetime) -> List[DayStats]:
        floor = since.date()
        counts = Counter(c.timestamp.date().isoformat() for c in clicks if c.timestamp.date() >= floor)
        return [DayStats(date=d, clicks=n) for d, n in sorted(counts.items(), reverse=True)]

    @staticmethod
    def _by_month(clicks: Iterable[Click], floor: str) -> List[MonthStats]:
        counts = Counter(c.timestamp.strftime("%Y-%m") for c in clicks)
        return [MonthStats(month=m, clicks=n) for m, n in sorted(counts.items(), reverse=True) if m >= floor]

    @staticmethod
    def _top_referrers(clicks: Iterable[Click], limit: int) -> List[ReferrerStats]:
        counts = Counter(c.referrer for c in clicks)
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [ReferrerStats(referrer=r, clicks=n) for r, n in ranked[:limit]]

    def record(self, click: Click) -> Click:
        with self._lock:
            stored = Click(
                id=next(self._ids),
                link_id=click.link_id,
                timestamp=click.timestamp,
                referrer=click.referrer,
                device_hash=click.device_hash,
                ip_hash=click.ip_hash,
            )
            self.clicks.setdefault(click.link_id, []).append(stored)
            return stored

    def get_stats_by_link_id(self, link_id: int, stats_filter: StatsFilter) -> ClickStats:
        now = self._clock()
        start, end = stats_filter.resolve(now)
        with self._lock:
            clicks = self._window(link_id, start, end)
        return ClickStats(
            total_clicks=len(clicks),
            clicks_by_day=self._by_day(clicks, day_floor(now, 30)),
            clicks_by_month=self._by_month(clicks, month_floor(now, 12).strftime("%Y-%m")),
            top_referrers=self._top_referrers(clicks, 10),
        )

    def get_clicks_by_day(self, link_id: int, days: int) -> List[DayStats]:
        now = self._clock()
        with self._lock:
            clicks = self._window(link_id)
        return self._by_day(clicks, day_floor(now, days))

    def get_clicks_by_month(self, link_id: int, months: int) -> List[MonthStats]:
        now = self._clock()
        with self._lock:
            clicks = self._window(link_id)
        return self._by_month(clicks, month_floor(now, months).strftime("%Y-%m"))

    def get_top_referrers(self, link_id: int, limit: int) -> List[ReferrerStats]:
        with self._lock:
            clicks = self._window(link_id)
        return self._top_referrers(clicks, limit)

    def delete_by_link_id(self, link_id: int) -> int:
        with self._lock:
            return len(self.clicks.pop(link_id, []))
