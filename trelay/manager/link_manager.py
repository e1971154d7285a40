"""
LinkManager module for trelay.

Responsibilities:
    - Create links: normalize + validate the URL, resolve the slug (custom or
      random with bounded retry), hash the password, compute expiry
    - Enforce the link state machine on reads (deleted, expired, password gate)
    - Mutate links: update, soft delete, restore, hard delete, burn
    - Count visits atomically through the store

Design notes:
    - Storage, analytics, slug allocation, URL validation and password
      hashing are injected; `clock` makes expiry deterministic in tests.
    - A caller-supplied slug is never retried: a collision is `SlugTaken`.
      Random slugs are regenerated up to `max_attempts` times per call, and
      the retry budget lives on the stack, not on the instance.
    - The store is the source of truth for uniqueness. `slug_exists` is a
      fast pre-check; a `SlugTaken` from `create` is what actually decides.
    - Visits that fail the password check are never counted.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..analytics.analytics import Analytics
from ..auth import passwords
from ..config import settings
from ..errors import (
    LinkDeleted,
    LinkExpired,
    LinkNotFound,
    PasswordIncorrect,
    PasswordRequired,
    SlugTaken,
    StorageError,
    ValidationError,
)
from ..models import Clock, Link, utc_now
from ..schemas import CreateLinkRequest, ListLinksFilter, UpdateLinkRequest
from ..storage.base import BaseLinkStore
from .slug import SlugAllocator, is_reserved
from .url_validator import URLValidator

log = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200


def normalize_host(host: Optional[str]) -> str:
    """Lower-cased host with any port removed ("Go.Example.com:8443" -> "go.example.com")."""
    host = (host or "").strip().lower()
    if host.startswith("["):
        end = host.find("]")
        return host[1:end] if end > 0 else host
    if host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host.rstrip(".")


def _clean_tags(tags: List[str]) -> List[str]:
    return [t.strip() for t in tags if t and t.strip()]


class LinkManager:
    """
    Coordinates creation, lookup and lifecycle rules for links.

    Args:
        store (BaseLinkStore): Link persistence.
        analytics (Optional[Analytics]): When given, hard deletes also erase clicks.
        slug_allocator (Optional[SlugAllocator]): Slug generation and validation.
        url_validator (Optional[URLValidator]): URL normalization and policy.
        hash_password (Callable[[str], str]): Slow salted password hash.
        verify_password (Callable[[str, str], bool]): Matching verifier.
        clock (Clock): Source of "now".
        max_attempts (Optional[int]): Random slug attempts per create call.
    """

    def __init__(
        self,
        store: BaseLinkStore,
        analytics: Optional[Analytics] = None,
        slug_allocator: Optional[SlugAllocator] = None,
        url_validator: Optional[URLValidator] = None,
        hash_password: Callable[[str], str] = passwords.hash_password,
        verify_password: Callable[[str, str], bool] = passwords.verify_password,
        clock: Clock = utc_now,
        max_attempts: Optional[int] = None,
    ):
        self.store = store
        self.analytics = analytics
        self.slugs = slug_allocator or SlugAllocator()
        self.urls = url_validator or URLValidator()
        self._hash_password = hash_password
        self._verify_password = verify_password
        self._clock = clock
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.SLUG_MAX_ATTEMPTS)

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------
    def _normalized_url(self, raw_url: str, check_reachable: bool = False) -> str:
        url = self.urls.normalize(raw_url)
        self.urls.validate(url)
        if check_reachable:
            self.urls.check_reachable(url)
        return url

    def _expiry(self, ttl_hours: int, now: datetime) -> Optional[datetime]:
        if ttl_hours < 0:
            raise ValidationError("ttl_hours must not be negative", field="ttl_hours")
        if ttl_hours == 0:
            return None
        return now + timedelta(hours=ttl_hours)

    def _check_live(self, link: Link) -> None:
        if link.is_deleted:
            raise LinkDeleted()
        if link.is_expired(self._clock()):
            raise LinkExpired()

    def _insert_custom(self, link: Link) -> Link:
        if self.store.slug_exists(link.slug):
            raise SlugTaken()
        return self.store.create(link)

    def _insert_random(self, link: Link) -> Link:
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.slugs.generate()
            if is_reserved(candidate) or self.store.slug_exists(candidate):
                log.debug("Random slug collision on attempt %d/%d", attempt, self.max_attempts)
                continue
            link.slug = candidate
            try:
                return self.store.create(link)
            except SlugTaken:
                # Claimed between the check and the insert.
                log.debug("Random slug lost insert race on attempt %d/%d", attempt, self.max_attempts)
        raise SlugTaken(f"could not allocate a unique slug after {self.max_attempts} attempts")

    # ---------------------------------------------------------------------
    # Creation
    # ---------------------------------------------------------------------
    def create(self, request: CreateLinkRequest) -> Link:
        """
        Create a link.

        Rules:
            - URL: normalize, validate, optionally probe reachability.
            - Slug: a supplied slug is lower-cased and validated, and collides
              with `SlugTaken`; otherwise a random slug is allocated.
            - Password: hashed when non-empty; the plain text is not kept.
            - ttl_hours: 0 means no expiry; negative is rejected.

        Raises:
            ValidationError: Bad URL, slug or ttl.
            SlugTaken: Slug held by an active link, or random allocation exhausted.
            StorageError: Backend failure.
        """
        url = self._normalized_url(request.url, request.check_reachable)
        custom_slug = None
        if request.slug:
            custom_slug = self.slugs.normalize(request.slug)
            self.slugs.validate(custom_slug)

        now = self._clock()
        link = Link(
            slug=custom_slug or "",
            original_url=url,
            domain=normalize_host(request.domain) or None,
            password_hash=self._hash_password(request.password) if request.password else None,
            is_one_time=request.is_one_time,
            expires_at=self._expiry(request.ttl_hours, now),
            tags=_clean_tags(request.tags),
            folder_id=request.folder_id,
            created_at=now,
            updated_at=now,
        )

        created = self._insert_custom(link) if custom_slug else self._insert_random(link)
        log.info("Created link id=%s slug=%s", created.id, created.slug)
        return created

    # ---------------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------------
    def get(self, slug: str, password: Optional[str] = None) -> Link:
        """
        Fetch a live link, verifying the password when the link has one.

        Raises:
            LinkNotFound, LinkDeleted, LinkExpired, PasswordRequired, PasswordIncorrect
        """
        link = self.store.get_by_slug(slug)
        self._check_live(link)
        if link.has_password:
            if not password:
                raise PasswordRequired()
            if not self._verify_password(password, link.password_hash or ""):
                raise PasswordIncorrect()
        return link

    def get_for_redirect(self, slug: str, host: Optional[str] = None) -> Link:
        """
        Fetch a live link for a visit and count it when no password gates it.

        When the link is bound to a domain and `host` is given, the host
        (port ignored) must match exactly; otherwise the link is reported
        as not found and the visit is not counted. Password-protected links
        are returned uncounted: the caller increments after verification.

        A failing counter never fails the visit.
        """
        link = self.store.get_by_slug(slug)
        self._check_live(link)
        if link.domain and host is not None and normalize_host(host) != link.domain:
            raise LinkNotFound()
        if not link.has_password:
            try:
                self.store.increment_click_count(link.id)
                link.click_count += 1
            except (StorageError, LinkNotFound):
                log.warning("Click count increment failed for link id=%s", link.id, exc_info=True)
        return link

    def get_by_id(self, link_id: int) -> Link:
        """Owner lookup; no state checks."""
        return self.store.get_by_id(link_id)

    def _domain_filter(self, link_filter: Optional[ListLinksFilter]) -> ListLinksFilter:
        # Stored domains went through normalize_host on create.
        link_filter = link_filter or ListLinksFilter()
        if link_filter.domain:
            link_filter = link_filter.model_copy(update={"domain": normalize_host(link_filter.domain)})
        return link_filter

    def list(self, link_filter: Optional[ListLinksFilter] = None) -> List[Link]:
        link_filter = self._domain_filter(link_filter)
        limit = link_filter.limit
        if limit <= 0:
            limit = DEFAULT_LIST_LIMIT
        elif limit > MAX_LIST_LIMIT:
            limit = MAX_LIST_LIMIT
        return self.store.list(link_filter.model_copy(update={"limit": limit}))

    def count(self, link_filter: Optional[ListLinksFilter] = None) -> int:
        return self.store.count(self._domain_filter(link_filter))

    # ---------------------------------------------------------------------
    # Mutations
    # ---------------------------------------------------------------------
    def update(self, slug: str, request: UpdateLinkRequest) -> Link:
        """
        Apply a partial update. Fields left as None are untouched;
        `updated_at` is always bumped.

        Raises:
            LinkNotFound, ValidationError, StorageError
        """
        link = self.store.get_by_slug(slug)
        now = self._clock()

        if request.url is not None:
            link.original_url = self._normalized_url(request.url)
        if request.password is not None:
            link.password_hash = self._hash_password(request.password) if request.password else None
        if request.ttl_hours is not None:
            link.expires_at = self._expiry(request.ttl_hours, now)
        if request.tags is not None:
            link.tags = _clean_tags(request.tags)
        if request.folder_id is not None:
            link.folder_id = request.folder_id

        link.updated_at = now
        self.store.update(link)
        log.info("Updated link id=%s slug=%s", link.id, link.slug)
        return link

    def delete(self, slug: str) -> None:
        """Soft delete. Raises LinkNotFound if missing or already deleted."""
        self.store.delete(slug, self._clock())
        log.info("Soft-deleted link slug=%s", slug)

    def restore(self, slug: str) -> None:
        """Undo a soft delete. Raises LinkNotFound if missing or not deleted."""
        self.store.restore(slug, self._clock())
        log.info("Restored link slug=%s", slug)

    def hard_delete(self, slug: str) -> None:
        """
        Remove the link row for good, then erase its clicks when analytics is wired in.

        The row goes first: if the store fails, the link keeps its history.
        """
        link = self.store.get_by_slug(slug)
        self.store.hard_delete(slug)
        if self.analytics is not None and link.id is not None:
            self.analytics.delete_stats(link.id)
        log.info("Hard-deleted link id=%s slug=%s", link.id, slug)

    def burn(self, link_id: int) -> None:
        """
        Consume a one-time link.

        Raises:
            LinkNotFound: No such id.
            LinkDeleted: Already consumed or deleted.
        """
        self.store.burn(link_id, self._clock())
        log.info("Burned one-time link id=%s", link_id)

    def increment_click(self, link_id: int) -> None:
        """Deferred visit count for password-protected links, after verification."""
        self.store.increment_click_count(link_id)
