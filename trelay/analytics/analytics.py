"""
Analytics engine for trelay.

Responsibilities:
    - Record click events with privacy-preserving identifiers only
    - Serve aggregate statistics (totals, per day, per month, top referrers)
    - Erase all clicks of a link on request

Design:
    - Storage is delegated to a BaseClickStore; this class owns the privacy
      transforms and the argument clamping.
    - Raw IPs and user agents are never stored or logged; they are reduced
      by `privacy` before a Click is built.
    - Disabled analytics make `record_click` a no-op returning None.

Clamps:
    days    : <= 0 -> 30,  > 365 -> 365
    months  : <= 0 -> 12,  > 24  -> 24
    limit   : <= 0 -> 10,  > 100 -> 100
"""

import logging
from typing import List, Optional

from ..config import settings
from ..models import Click, ClickStats, Clock, DayStats, MonthStats, ReferrerStats, utc_now
from ..schemas import StatsFilter
from ..storage.base import BaseClickStore
from . import privacy

log = logging.getLogger(__name__)


def _clamp(value: int, default: int, maximum: int) -> int:
    if value <= 0:
        return default
    return min(value, maximum)


class Analytics:
    """
    Args:
        click_store (BaseClickStore): Where click events live.
        enabled (Optional[bool]): settings.ANALYTICS_ENABLED by default.
        anonymize_ip (Optional[bool]): Store an ip_hash at all; settings.IP_ANONYMIZATION by default.
        salt (Optional[str]): Key for the privacy hashes; settings.HASH_SALT by default.
        clock (Optional[Clock]): Source of click timestamps.
    """

    def __init__(
        self,
        click_store: BaseClickStore,
        enabled: Optional[bool] = None,
        anonymize_ip: Optional[bool] = None,
        salt: Optional[str] = None,
        clock: Optional[Clock] = None,
    ):
        self.click_store = click_store
        self.enabled = settings.ANALYTICS_ENABLED if enabled is None else enabled
        self.anonymize_ip = settings.IP_ANONYMIZATION if anonymize_ip is None else anonymize_ip
        self.salt = settings.HASH_SALT if salt is None else salt
        self._clock = clock or utc_now

    def record_click(
        self,
        link_id: int,
        ip: str = "",
        user_agent: str = "",
        referrer: str = "",
    ) -> Optional[Click]:
        """
        Persist one visit.

        Args:
            link_id (int): Owning link.
            ip (str): Raw client IP; reduced to a salted /24 or /48 hash.
            user_agent (str): Raw user agent; reduced to a salted device-category hash.
            referrer (str): Raw Referer header.

        Returns:
            Optional[Click]: The stored click, or None when analytics are disabled.
        """
        if not self.enabled:
            return None
        click = Click(
            link_id=link_id,
            timestamp=self._clock(),
            referrer=privacy.normalize_referrer(referrer),
            device_hash=privacy.hash_device(user_agent, self.salt),
            ip_hash=privacy.hash_ip(ip, self.salt) if self.anonymize_ip else None,
        )
        stored = self.click_store.record(click)
        log.debug("Recorded click for link_id=%s", link_id)
        return stored

    def get_stats(self, link_id: int, stats_filter: Optional[StatsFilter] = None) -> ClickStats:
        return self.click_store.get_stats_by_link_id(link_id, stats_filter or StatsFilter())

    def get_clicks_by_day(self, link_id: int, days: int = 30) -> List[DayStats]:
        return self.click_store.get_clicks_by_day(link_id, _clamp(days, 30, 365))

    def get_clicks_by_month(self, link_id: int, months: int = 12) -> List[MonthStats]:
        return self.click_store.get_clicks_by_month(link_id, _clamp(months, 12, 24))

    def get_top_referrers(self, link_id: int, limit: int = 10) -> List[ReferrerStats]:
        return self.click_store.get_top_referrers(link_id, _clamp(limit, 10, 100))

    def delete_stats(self, link_id: int) -> int:
        """Erase every click of a link. Returns the number of clicks removed."""
        removed = self.click_store.delete_by_link_id(link_id)
        log.info("Erased %d click(s) for link_id=%s", removed, link_id)
        return removed
