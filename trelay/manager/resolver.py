"""
Redirect resolution for trelay.

A visit is resolved in one pass:

    1. Fetch the link for a redirect (not found / deleted / expired / wrong
       host short-circuit; unprotected links are counted here).
    2. Password-protected links need the visitor's password; once verified
       the deferred click is counted.
    3. One-time links are burned. Losing a concurrent burn means another
       visitor consumed it first, and this visit fails as deleted.
    4. Click analytics are submitted to a background executor unless the
       user agent looks like a bot. Their failure is logged, never raised.
    5. A permanent redirect to the original URL is returned.

The HTTP layer only has to turn a `Redirect` into a response and a
`StateError` into its `http_status`.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Mapping, Optional

from ..analytics.analytics import Analytics
from ..analytics.privacy import is_bot
from ..config import settings
from ..errors import LinkNotFound, PasswordRequired, StorageError
from ..models import Link
from .link_manager import LinkManager, normalize_host

log = logging.getLogger(__name__)

REDIRECT_STATUS = 301


@dataclass(frozen=True)
class Visit:
    """What the resolver needs to know about one incoming request."""

    slug: str
    host: str = ""
    password: Optional[str] = None
    user_agent: str = ""
    referrer: str = ""
    client_ip: str = ""

    @classmethod
    def from_headers(
        cls,
        slug: str,
        headers: Mapping[str, str],
        remote_addr: str = "",
        password: Optional[str] = None,
    ) -> "Visit":
        """
        Build a visit from request headers.

        Client IP: first X-Forwarded-For entry, then X-Real-IP, then the
        socket peer address. Header names are matched case-insensitively.
        """
        lowered = {k.lower(): v for k, v in headers.items()}
        forwarded = lowered.get("x-forwarded-for", "").strip()
        if forwarded:
            client_ip = forwarded.split(",", 1)[0].strip()
        else:
            client_ip = lowered.get("x-real-ip", "").strip() or remote_addr
        return cls(
            slug=slug,
            host=normalize_host(lowered.get("host", "")),
            password=password,
            user_agent=lowered.get("user-agent", ""),
            referrer=lowered.get("referer", ""),
            client_ip=client_ip,
        )


@dataclass
class Redirect:
    location: str
    link: Link
    status_code: int = REDIRECT_STATUS
    analytics: Optional[Future] = None


class RedirectResolver:
    """
    Args:
        links (LinkManager): Lifecycle service.
        analytics (Optional[Analytics]): Click recorder; None disables recording.
        executor (Optional[Executor]): Runs click recording off the request path.
            A thread pool of settings.ANALYTICS_WORKERS is created when omitted.
    """

    def __init__(
        self,
        links: LinkManager,
        analytics: Optional[Analytics] = None,
        executor: Optional[Executor] = None,
    ):
        self.links = links
        self.analytics = analytics
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.ANALYTICS_WORKERS,
            thread_name_prefix="trelay-analytics",
        )

    def resolve(self, visit: Visit) -> Redirect:
        """
        Decide what a visit gets.

        Returns:
            Redirect: Target URL, status and the pending analytics future (if any).

        Raises:
            LinkNotFound: Unknown slug, or wrong host for a domain-bound link.
            LinkDeleted: Soft-deleted or already-consumed one-time link.
            LinkExpired, PasswordRequired, PasswordIncorrect
        """
        link = self.links.get_for_redirect(visit.slug, host=visit.host)

        if link.has_password:
            if not visit.password:
                raise PasswordRequired()
            link = self.links.get(visit.slug, visit.password)
            try:
                self.links.increment_click(link.id)
                link.click_count += 1
            except (StorageError, LinkNotFound):
                log.warning("Deferred click increment failed for link id=%s", link.id, exc_info=True)

        if link.is_one_time:
            self.links.burn(link.id)

        pending = None
        if self.analytics is not None and not is_bot(visit.user_agent):
            try:
                pending = self.executor.submit(self._record, link.id, visit)
            except RuntimeError:
                # Executor already shut down.
                log.warning("Click recording skipped for link id=%s", link.id, exc_info=True)

        return Redirect(location=link.original_url, link=link, analytics=pending)

    def _record(self, link_id: int, visit: Visit) -> None:
        try:
            self.analytics.record_click(
                link_id,
                ip=visit.client_ip,
                user_agent=visit.user_agent,
                referrer=visit.referrer,
            )
        except Exception:
            log.warning("Click recording failed for link id=%s", link_id, exc_info=True)

    def close(self) -> None:
        """Wait for pending click recordings; only shuts down an executor we created."""
        if self._owns_executor:
            self.executor.shutdown(wait=True)
