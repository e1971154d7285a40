"""
Domain types for trelay.

Link is the mutable entity owned by the stores; Click is an immutable event.
Statistics rows are small frozen records returned by the click store.

Optional fields (`expires_at`, `deleted_at`, `folder_id`, `domain`,
`password_hash`) use None for "unset" rather than sentinel values.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Timezone-aware current UTC time; the default clock everywhere."""
    return datetime.now(timezone.utc)


class LinkState(str, Enum):
    ACTIVE = "active"
    PASSWORD_GATED = "password_gated"
    EXPIRED = "expired"
    DELETED = "deleted"


class StatsPeriod(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


@dataclass
class Link:
    """A shortened URL and its metadata."""

    slug: str
    original_url: str
    id: Optional[int] = None
    domain: Optional[str] = None
    password_hash: Optional[str] = None
    is_one_time: bool = False
    expires_at: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)
    folder_id: Optional[int] = None
    click_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utc_now()) > self.expires_at

    def state(self, now: Optional[datetime] = None) -> LinkState:
        """Deleted wins over expired; password gating only applies to live links."""
        if self.is_deleted:
            return LinkState.DELETED
        if self.is_expired(now):
            return LinkState.EXPIRED
        if self.has_password:
            return LinkState.PASSWORD_GATED
        return LinkState.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        """Public representation. The password hash never leaves the core."""

        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "slug": self.slug,
            "original_url": self.original_url,
            "domain": self.domain,
            "has_password": self.has_password,
            "is_one_time": self.is_one_time,
            "expires_at": _iso(self.expires_at),
            "tags": list(self.tags),
            "folder_id": self.folder_id,
            "click_count": self.click_count,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


@dataclass(frozen=True)
class Click:
    """
    One recorded visit. Holds only derived, non-reversible data: the raw IP
    and user agent are consumed by the analytics engine and dropped.
    """

    link_id: int
    timestamp: datetime
    referrer: str
    device_hash: Optional[str] = None
    ip_hash: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class DayStats:
    date: str  # YYYY-MM-DD
    clicks: int


@dataclass(frozen=True)
class MonthStats:
    month: str  # YYYY-MM
    clicks: int


@dataclass(frozen=True)
class ReferrerStats:
    referrer: str
    clicks: int


@dataclass
class ClickStats:
    total_clicks: int = 0
    clicks_by_day: List[DayStats] = field(default_factory=list)
    clicks_by_month: List[MonthStats] = field(default_factory=list)
    top_referrers: List[ReferrerStats] = field(default_factory=list)
