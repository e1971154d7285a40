"""
Destination URL normalization and validation.

Rules:
    - Normalize: trim, default to https:// when no scheme is given, ensure a
      non-empty path ("/").
    - Validate: non-empty, bounded length, http/https only, a host is present,
      and the host is not loopback or one of our own domains (a short link
      pointing back at the shortener would loop).
    - Optional reachability probe (HEAD, redirects followed) for callers that
      ask for it at creation time.
"""

import ipaddress
import logging
from typing import Iterable, Optional, Set
from urllib.parse import urlsplit, urlunsplit

import requests

from ..config import settings
from ..errors import URLHostBlocked, URLInvalid, URLSchemeNotAllowed, URLTooLong, URLUnreachable

log = logging.getLogger(__name__)

DEFAULT_MAX_URL_LENGTH = 2048
ALLOWED_SCHEMES = frozenset({"http", "https"})
LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "0.0.0.0"})


def _is_loopback(host: str) -> bool:
    if host in LOOPBACK_HOSTS or host.endswith(".localhost"):
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


class URLValidator:
    """
    Canonicalizes and sanity-checks destination URLs.

    Args:
        max_length (Optional[int]): Maximum URL length; settings.MAX_URL_LENGTH by default.
        self_domains (Optional[Iterable[str]]): Hosts served by this instance;
            settings.blocked_domains() by default.
        timeout (Optional[float]): Reachability probe timeout in seconds.
    """

    def __init__(
        self,
        max_length: Optional[int] = None,
        self_domains: Optional[Iterable[str]] = None,
        timeout: Optional[float] = None,
    ):
        length = max_length if max_length is not None else settings.MAX_URL_LENGTH
        self.max_length = length if length > 0 else DEFAULT_MAX_URL_LENGTH
        domains = settings.blocked_domains() if self_domains is None else self_domains
        self.blocked_hosts: Set[str] = {d.strip().lower() for d in domains if d.strip()}
        self.timeout = timeout if timeout is not None else settings.REACHABILITY_TIMEOUT

    def normalize(self, raw_url: str) -> str:
        raw_url = (raw_url or "").strip()
        if not raw_url:
            raise URLInvalid("URL is required")
        if "://" not in raw_url:
            raw_url = "https://" + raw_url
        try:
            parts = urlsplit(raw_url)
        except ValueError as exc:
            raise URLInvalid() from exc
        path = parts.path or "/"
        return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))

    def validate(self, url: str) -> None:
        """
        Raises:
            URLInvalid, URLTooLong, URLSchemeNotAllowed, URLHostBlocked
        """
        if not url:
            raise URLInvalid("URL is required")
        if len(url) > self.max_length:
            raise URLTooLong(f"URL exceeds maximum length of {self.max_length}")
        try:
            parts = urlsplit(url)
            host = (parts.hostname or "").lower()
        except ValueError as exc:
            raise URLInvalid() from exc
        if parts.scheme.lower() not in ALLOWED_SCHEMES:
            raise URLSchemeNotAllowed()
        if not host:
            raise URLInvalid("URL has no host")
        if _is_loopback(host) or host in self.blocked_hosts:
            raise URLHostBlocked()

    def check_reachable(self, url: str) -> None:
        """
        Best-effort reachability probe.

        Any transport failure or 5xx answer is unreachable; 2xx, 3xx and 4xx
        mean a server is there.

        Raises:
            URLUnreachable
        """
        try:
            resp = requests.head(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as exc:
            log.debug("Reachability probe failed for host %s: %s", urlsplit(url).hostname, exc)
            raise URLUnreachable() from exc
        if resp.status_code >= 500:
            raise URLUnreachable(f"URL answered with status {resp.status_code}")
