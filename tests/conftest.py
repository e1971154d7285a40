"""
Global pytest fixtures for the trelay test suite.

Responsibilities:
    - Provide isolated in-memory link/click stores for direct testing
    - Provide a controllable clock so expiry and time buckets are deterministic
    - Provide Analytics, LinkManager and RedirectResolver wired to those stores
    - Run analytics recording synchronously so tests can assert on it

Fast bcrypt rounds are forced for every test; the production cost factor
would make the suite needlessly slow.
"""

from concurrent.futures import Executor, Future
from datetime import datetime, timedelta, timezone

import pytest

from trelay.analytics.analytics import Analytics
from trelay.config import settings
from trelay.manager.link_manager import LinkManager
from trelay.manager.resolver import RedirectResolver
from trelay.manager.url_validator import URLValidator
from trelay.storage.memory import MemoryClickStore, MemoryLinkStore

T0 = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class ImmediateExecutor(Executor):
    """Runs submitted work inline and hands back a completed Future."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def link_store() -> MemoryLinkStore:
    return MemoryLinkStore()


@pytest.fixture
def click_store(clock) -> MemoryClickStore:
    return MemoryClickStore(clock=clock)


@pytest.fixture
def analytics(click_store, clock) -> Analytics:
    return Analytics(click_store, enabled=True, anonymize_ip=True, salt="test-salt", clock=clock)


@pytest.fixture
def url_validator() -> URLValidator:
    return URLValidator(self_domains=["trel.ay"])


@pytest.fixture
def manager(link_store, analytics, url_validator, clock) -> LinkManager:
    """
    LinkManager wired to the in-memory store and the fake clock.

    Analytics is attached so hard deletes also erase clicks.
    """
    return LinkManager(link_store, analytics=analytics, url_validator=url_validator, clock=clock)


@pytest.fixture
def executor() -> ImmediateExecutor:
    return ImmediateExecutor()


@pytest.fixture
def resolver(manager, analytics, executor) -> RedirectResolver:
    return RedirectResolver(manager, analytics=analytics, executor=executor)
