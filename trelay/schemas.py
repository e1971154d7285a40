"""
Pydantic request payloads accepted by the core services.

Shape checks (types, defaults) happen here; business rules such as slug
syntax, URL policy or TTL sign are enforced by the services so that they
surface as trelay's own typed errors.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from .models import StatsPeriod

_PERIOD_SPAN = {
    StatsPeriod.DAY: timedelta(days=1),
    StatsPeriod.WEEK: timedelta(weeks=1),
    StatsPeriod.MONTH: timedelta(days=30),
    StatsPeriod.YEAR: timedelta(days=365),
}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are read as UTC; stored timestamps are always aware."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CreateLinkRequest(BaseModel):
    """Payload for creating a new link."""
    url: str
    slug: Optional[str] = None
    domain: Optional[str] = None
    password: Optional[str] = None
    ttl_hours: int = 0
    tags: List[str] = Field(default_factory=list)
    folder_id: Optional[int] = None
    is_one_time: bool = False
    check_reachable: bool = False


class UpdateLinkRequest(BaseModel):
    """
    Partial update. A field left as None is not touched.

    `password=""` removes protection and `ttl_hours=0` removes the expiry.
    """
    url: Optional[str] = None
    password: Optional[str] = None
    ttl_hours: Optional[int] = None
    tags: Optional[List[str]] = None
    folder_id: Optional[int] = None


class ListLinksFilter(BaseModel):
    search: str = ""
    tags: List[str] = Field(default_factory=list)
    folder_id: Optional[int] = None
    domain: Optional[str] = None
    limit: int = 50
    offset: int = 0
    include_deleted: bool = False
    only_deleted: bool = False
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None

    @field_validator("created_after", "created_before")
    @classmethod
    def _utc_bounds(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class StatsFilter(BaseModel):
    period: StatsPeriod = StatsPeriod.ALL
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    def resolve(self, now: datetime) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Return the (start, end) window; explicit dates take precedence over the period."""
        start = self.start_date
        if start is None and self.period in _PERIOD_SPAN:
            start = now - _PERIOD_SPAN[self.period]
        return start, self.end_date
