"""
Unit tests for LinkManager.

Covers:
    - create: random and custom slugs, URL normalization, password hashing,
      TTL handling, tag cleanup, domain binding, reachability opt-in
    - Slug collisions: custom slug taken, random retry, retry exhaustion,
      insert-time race surfaced as SlugTaken
    - Reuse of a soft-deleted slug
    - get / get_for_redirect state checks and click counting policy
    - update, delete, restore, hard_delete (with analytics erasure), burn
    - list limit clamping and count
"""

from unittest.mock import MagicMock, patch

import pytest

from trelay.errors import (
    LinkDeleted,
    LinkExpired,
    LinkNotFound,
    PasswordIncorrect,
    PasswordRequired,
    SlugReserved,
    SlugTaken,
    StorageError,
    URLHostBlocked,
    URLInvalid,
    URLUnreachable,
    ValidationError,
)
from trelay.manager.link_manager import LinkManager, normalize_host
from trelay.manager.slug import SLUG_PATTERN, SlugAllocator
from trelay.schemas import CreateLinkRequest, ListLinksFilter, UpdateLinkRequest


def _create(manager, url="https://example.com/page", **kwargs):
    return manager.create(CreateLinkRequest(url=url, **kwargs))


class _ScriptedAllocator(SlugAllocator):
    """Hands out a fixed sequence of slugs."""

    def __init__(self, slugs):
        super().__init__()
        self._slugs = iter(slugs)

    def generate(self, length=None):
        return next(self._slugs)


# ---------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------

def test_create_random_slug(manager, clock):
    link = _create(manager)
    assert link.id is not None
    assert SLUG_PATTERN.fullmatch(link.slug)
    assert 4 <= len(link.slug) <= 32
    assert link.original_url == "https://example.com/page"
    assert link.created_at == link.updated_at == clock.now
    assert link.expires_at is None
    assert link.click_count == 0


def test_create_normalizes_url(manager):
    link = _create(manager, url="  example.com ")
    assert link.original_url == "https://example.com/"


def test_create_custom_slug_is_normalized(manager):
    link = _create(manager, slug="  My-Link ")
    assert link.slug == "my-link"
    assert manager.get("my-link").id == link.id


def test_create_rejects_reserved_slug(manager):
    with pytest.raises(SlugReserved):
        _create(manager, slug="Admin")


@pytest.mark.parametrize("url,error", [("", URLInvalid), ("http://localhost/x", URLHostBlocked), ("https://trel.ay/x", URLHostBlocked)])
def test_create_rejects_bad_urls(manager, url, error):
    with pytest.raises(error):
        _create(manager, url=url)
    assert manager.count() == 0


def test_create_custom_slug_taken(manager):
    _create(manager, slug="taken")
    with pytest.raises(SlugTaken):
        _create(manager, url="https://other.example/", slug="taken")


def test_soft_deleted_slug_can_be_reused(manager):
    old = _create(manager, url="https://old.example/", slug="reuse")
    manager.delete("reuse")
    new = _create(manager, url="https://new.example/", slug="reuse")
    assert manager.get("reuse").original_url == "https://new.example/"
    assert new.id != old.id
    with pytest.raises(LinkNotFound):
        manager.get_by_id(old.id)


def test_create_with_ttl_expires(manager, clock):
    link = _create(manager, slug="short-lived", ttl_hours=1)
    assert manager.get("short-lived").id == link.id
    clock.advance(minutes=59)
    manager.get("short-lived")
    clock.advance(minutes=2)
    with pytest.raises(LinkExpired):
        manager.get("short-lived")
    with pytest.raises(LinkExpired):
        manager.get_for_redirect("short-lived")


def test_create_negative_ttl(manager):
    with pytest.raises(ValidationError) as exc_info:
        _create(manager, ttl_hours=-1)
    assert exc_info.value.field == "ttl_hours"


def test_create_hashes_password(manager):
    link = _create(manager, slug="secret", password="hunter2")
    assert link.has_password
    assert link.password_hash != "hunter2"
    assert "hunter2" not in str(link.to_dict())


def test_create_empty_password_means_unprotected(manager):
    assert not _create(manager, password="").has_password


def test_create_cleans_tags_and_domain(manager):
    link = _create(manager, tags=[" a ", "", "b"], domain="Go.Example.com:443")
    assert link.tags == ["a", "b"]
    assert link.domain == "go.example.com"


def test_create_checks_reachability_only_when_asked(manager):
    with patch.object(manager.urls, "check_reachable", side_effect=URLUnreachable()) as reach:
        _create(manager)
        reach.assert_not_called()
        with pytest.raises(URLUnreachable):
            _create(manager, check_reachable=True)
        reach.assert_called_once_with("https://example.com/page")


def test_random_slug_retries_on_collision(link_store, clock):
    mgr = LinkManager(link_store, slug_allocator=_ScriptedAllocator(["aaaa", "aaaa", "admin", "bbbb"]), clock=clock)
    assert mgr.create(CreateLinkRequest(url="https://a.example/")).slug == "aaaa"
    assert mgr.create(CreateLinkRequest(url="https://b.example/")).slug == "bbbb"


def test_random_slug_retry_budget_is_per_call(link_store, clock):
    slugs = ["aaaa"] * 3 + ["bbbb"]
    mgr = LinkManager(link_store, slug_allocator=_ScriptedAllocator(["aaaa"] + slugs), clock=clock, max_attempts=3)
    mgr.create(CreateLinkRequest(url="https://a.example/"))
    with pytest.raises(SlugTaken):
        mgr.create(CreateLinkRequest(url="https://b.example/"))
    # A fresh call gets a fresh budget.
    assert mgr.create(CreateLinkRequest(url="https://c.example/")).slug == "bbbb"


def test_random_slug_insert_race_is_retried(link_store, clock):
    store = MagicMock(wraps=link_store)
    store.slug_exists.return_value = False
    calls = {"n": 0}

    def flaky_create(link):
        calls["n"] += 1
        if calls["n"] == 1:
            raise SlugTaken()
        return link_store.create(link)

    store.create.side_effect = flaky_create
    mgr = LinkManager(store, slug_allocator=_ScriptedAllocator(["race", "safe"]), clock=clock)
    assert mgr.create(CreateLinkRequest(url="https://a.example/")).slug == "safe"


def test_custom_slug_insert_race_is_slug_taken(clock):
    store = MagicMock()
    store.slug_exists.return_value = False
    store.create.side_effect = SlugTaken()
    mgr = LinkManager(store, clock=clock)
    with pytest.raises(SlugTaken):
        mgr.create(CreateLinkRequest(url="https://a.example/", slug="mine"))
    assert store.create.call_count == 1


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------

def test_get_state_errors(manager):
    with pytest.raises(LinkNotFound):
        manager.get("missing")
    _create(manager, slug="dead")
    manager.delete("dead")
    with pytest.raises(LinkDeleted):
        manager.get("dead")
    with pytest.raises(LinkDeleted):
        manager.get_for_redirect("dead")


def test_get_password_checks(manager):
    _create(manager, slug="locked", password="pw")
    with pytest.raises(PasswordRequired):
        manager.get("locked")
    with pytest.raises(PasswordIncorrect):
        manager.get("locked", "nope")
    assert manager.get("locked", "pw").slug == "locked"


def test_get_for_redirect_counts_open_links(manager):
    link = _create(manager, slug="open")
    returned = manager.get_for_redirect("open")
    assert returned.click_count == 1
    manager.get_for_redirect("open")
    assert manager.get_by_id(link.id).click_count == 2


def test_password_link_click_policy(manager):
    link = _create(manager, slug="gated", password="pw")
    manager.get_for_redirect("gated")
    assert manager.get_by_id(link.id).click_count == 0

    with pytest.raises(PasswordIncorrect):
        manager.get("gated", "wrong")
    assert manager.get_by_id(link.id).click_count == 0

    verified = manager.get("gated", "pw")
    manager.increment_click(verified.id)
    assert manager.get_by_id(link.id).click_count == 1


def test_get_for_redirect_domain_binding(manager):
    link = _create(manager, slug="branded", domain="go.example.com")
    with pytest.raises(LinkNotFound):
        manager.get_for_redirect("branded", host="other.example.com")
    assert manager.get_by_id(link.id).click_count == 0
    assert manager.get_for_redirect("branded", host="GO.example.com:8080").id == link.id
    assert manager.get_by_id(link.id).click_count == 1


def test_get_for_redirect_survives_counter_failure(link_store, clock):
    store = MagicMock(wraps=link_store)
    store.increment_click_count.side_effect = StorageError("db down")
    mgr = LinkManager(store, clock=clock)
    mgr.create(CreateLinkRequest(url="https://a.example/", slug="flaky"))
    link = mgr.get_for_redirect("flaky")
    assert link.slug == "flaky"
    assert link.click_count == 0


def test_storage_errors_propagate_from_get(clock):
    store = MagicMock()
    store.get_by_slug.side_effect = StorageError("boom")
    with pytest.raises(StorageError):
        LinkManager(store, clock=clock).get("x")


# ---------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------

def test_update_partial(manager, clock):
    link = _create(manager, slug="edit", tags=["old"], folder_id=3)
    clock.advance(minutes=5)
    updated = manager.update("edit", UpdateLinkRequest(url="new.example/path"))
    assert updated.original_url == "https://new.example/path"
    assert updated.tags == ["old"]
    assert updated.folder_id == 3
    assert updated.updated_at == clock.now
    assert updated.created_at == link.created_at
    stored = manager.get("edit")
    assert stored.original_url == "https://new.example/path"
    assert stored.updated_at == clock.now


def test_update_password_set_and_clear(manager):
    _create(manager, slug="pwd")
    manager.update("pwd", UpdateLinkRequest(password="s3cret"))
    with pytest.raises(PasswordRequired):
        manager.get("pwd")
    manager.update("pwd", UpdateLinkRequest(password=""))
    assert not manager.get("pwd").has_password


def test_update_ttl_set_and_clear(manager, clock):
    _create(manager, slug="ttl")
    manager.update("ttl", UpdateLinkRequest(ttl_hours=2))
    assert manager.get("ttl").expires_at is not None
    manager.update("ttl", UpdateLinkRequest(ttl_hours=0))
    assert manager.get("ttl").expires_at is None
    with pytest.raises(ValidationError):
        manager.update("ttl", UpdateLinkRequest(ttl_hours=-3))


def test_update_revalidates_url(manager):
    _create(manager, slug="keep")
    with pytest.raises(URLHostBlocked):
        manager.update("keep", UpdateLinkRequest(url="http://127.0.0.1/"))
    assert manager.get("keep").original_url == "https://example.com/page"


def test_update_missing(manager):
    with pytest.raises(LinkNotFound):
        manager.update("ghost", UpdateLinkRequest(tags=["x"]))


def test_delete_restore_cycle(manager):
    _create(manager, slug="cycle")
    with pytest.raises(LinkNotFound):
        manager.restore("cycle")
    manager.delete("cycle")
    with pytest.raises(LinkNotFound):
        manager.delete("cycle")
    manager.restore("cycle")
    assert manager.get("cycle").deleted_at is None


def test_hard_delete_erases_analytics(manager, analytics):
    link = _create(manager, slug="erase")
    analytics.record_click(link.id, ip="10.0.0.1")
    analytics.record_click(link.id)
    manager.hard_delete("erase")
    with pytest.raises(LinkNotFound):
        manager.get("erase")
    assert analytics.get_stats(link.id).total_clicks == 0
    with pytest.raises(LinkNotFound):
        manager.hard_delete("erase")


def test_hard_delete_keeps_analytics_when_store_fails(manager, analytics, link_store, monkeypatch):
    link = _create(manager, slug="keep")
    analytics.record_click(link.id)

    def boom(slug):
        raise StorageError("db down")

    monkeypatch.setattr(link_store, "hard_delete", boom)
    with pytest.raises(StorageError):
        manager.hard_delete("keep")
    assert manager.get("keep").id == link.id
    assert analytics.get_stats(link.id).total_clicks == 1


def test_burn_once(manager):
    link = _create(manager, slug="burnme", is_one_time=True)
    manager.burn(link.id)
    with pytest.raises(LinkDeleted):
        manager.get("burnme")
    with pytest.raises(LinkDeleted):
        manager.burn(link.id)


# ---------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------

@pytest.mark.parametrize("requested,expected", [(0, 50), (-1, 50), (10, 10), (200, 200), (500, 200)])
def test_list_limit_is_clamped(clock, requested, expected):
    store = MagicMock()
    store.list.return_value = []
    LinkManager(store, clock=clock).list(ListLinksFilter(limit=requested))
    assert store.list.call_args[0][0].limit == expected


def test_list_and_count(manager, clock):
    for i in range(3):
        _create(manager, url=f"https://example.com/{i}", slug=f"item{i}", tags=["t"] if i else [])
        clock.advance(seconds=1)
    assert [l.slug for l in manager.list()] == ["item2", "item1", "item0"]
    assert manager.count(ListLinksFilter(tags=["t"])) == 2


def test_list_and_count_accept_naive_dates(manager, clock):
    _create(manager, slug="older")
    clock.advance(days=1)
    _create(manager, slug="newer")
    after = manager.list(ListLinksFilter(created_after="2024-03-16T00:00:00"))
    assert [l.slug for l in after] == ["newer"]
    assert manager.count(ListLinksFilter(created_before="2024-03-16T00:00:00")) == 1


def test_list_domain_filter_is_normalized(manager):
    _create(manager, slug="branded", domain="Go.Example.com")
    _create(manager, slug="plain")
    assert [l.slug for l in manager.list(ListLinksFilter(domain="Go.Example.com:443"))] == ["branded"]
    assert manager.count(ListLinksFilter(domain="GO.EXAMPLE.COM")) == 1


@pytest.mark.parametrize(
    "raw,expected",
    [("Go.Example.com", "go.example.com"), ("go.example.com:8080", "go.example.com"), ("[::1]:80", "::1"), ("", ""), (None, "")],
)
def test_normalize_host(raw, expected):
    assert normalize_host(raw) == expected
