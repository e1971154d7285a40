"""
Unit tests for URLValidator.

Covers:
    - Normalization: trimming, default https scheme, default "/" path
    - Validation: empty, too long, scheme, missing host, loopback, self domains
    - Reachability probe via requests (mocked; no real network)
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from trelay.errors import URLHostBlocked, URLInvalid, URLSchemeNotAllowed, URLTooLong, URLUnreachable
from trelay.manager.url_validator import URLValidator


@pytest.fixture
def validator():
    return URLValidator(max_length=100, self_domains=["trel.ay", "Go.Example.org"], timeout=1.0)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("example.com", "https://example.com/"),
        ("  https://example.com/a?b=1  ", "https://example.com/a?b=1"),
        ("http://example.com", "http://example.com/"),
        ("https://example.com/path#frag", "https://example.com/path#frag"),
    ],
)
def test_normalize(validator, raw, expected):
    assert validator.normalize(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", None])
def test_normalize_empty(validator, raw):
    with pytest.raises(URLInvalid):
        validator.normalize(raw)


def test_validate_accepts_normal_url(validator):
    validator.validate("https://example.com/")


@pytest.mark.parametrize(
    "url,error",
    [
        ("", URLInvalid),
        ("https://example.com/" + "a" * 100, URLTooLong),
        ("ftp://example.com/", URLSchemeNotAllowed),
        ("javascript://alert(1)/", URLSchemeNotAllowed),
        ("https:///nohost", URLInvalid),
        ("http://localhost/", URLHostBlocked),
        ("http://127.0.0.1:8080/", URLHostBlocked),
        ("http://[::1]/", URLHostBlocked),
        ("http://app.localhost/", URLHostBlocked),
        ("https://trel.ay/abc", URLHostBlocked),
        ("https://go.example.org/x", URLHostBlocked),
    ],
)
def test_validate_rejects(validator, url, error):
    with pytest.raises(error) as exc_info:
        validator.validate(url)
    assert exc_info.value.field == "url"


def test_max_length_boundary():
    v = URLValidator(max_length=30, self_domains=[])
    url = "https://example.com/" + "a" * 10
    assert len(url) == 30
    v.validate(url)
    with pytest.raises(URLTooLong):
        v.validate(url + "a")


def test_default_self_domains_come_from_settings(monkeypatch):
    from trelay.config import settings

    monkeypatch.setattr(settings, "SELF_DOMAINS", ["short.test"])
    monkeypatch.setattr(settings, "BASE_URL", "https://s.example.net")
    v = URLValidator()
    assert {"short.test", "s.example.net"} <= v.blocked_hosts


@pytest.mark.parametrize("status", [200, 301, 404])
def test_check_reachable_accepts_live_server(validator, status):
    with patch("trelay.manager.url_validator.requests.head", return_value=MagicMock(status_code=status)) as head:
        validator.check_reachable("https://example.com/")
    head.assert_called_once_with("https://example.com/", timeout=1.0, allow_redirects=True)


def test_check_reachable_rejects_5xx(validator):
    with patch("trelay.manager.url_validator.requests.head", return_value=MagicMock(status_code=503)):
        with pytest.raises(URLUnreachable):
            validator.check_reachable("https://example.com/")


def test_check_reachable_rejects_transport_error(validator):
    with patch(
        "trelay.manager.url_validator.requests.head",
        side_effect=requests.ConnectionError("refused"),
    ):
        with pytest.raises(URLUnreachable) as exc_info:
            validator.check_reachable("https://example.com/")
    assert isinstance(exc_info.value.__cause__, requests.ConnectionError)
