"""
Slug allocation and validation for trelay.

Responsibilities:
    - Generate random Base62 slugs from a cryptographically secure source
    - Normalize user-supplied slugs (trim + lower-case)
    - Validate slugs: length bounds, character pattern, reserved words

Notes:
    - Collisions are unlikely but possible; uniqueness is checked by the
      caller against the link store, which retries generation on collision.
    - The allocator holds no mutable state beyond its configured length, so a
      single instance can be shared across threads.
"""

import random
import re
from typing import FrozenSet, Optional

from ..config import settings
from ..errors import SlugInvalidCharacters, SlugReserved, SlugTooLong, SlugTooShort

SLUG_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"

MIN_SLUG_LENGTH = 4
MAX_SLUG_LENGTH = 32
DEFAULT_SLUG_LENGTH = 6

SLUG_PATTERN = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9_-]*[A-Za-z0-9])?$")

# Paths owned by the service itself.
RESERVED_SLUGS: FrozenSet[str] = frozenset({
    "api",
    "admin",
    "login",
    "logout",
    "register",
    "health",
    "healthz",
    "metrics",
    "static",
    "assets",
    "favicon",
})


def _safe_len(length: Optional[int]) -> int:
    """Resolve the desired length from arg or config, clamped to [4, 32]."""
    L = int(length) if length is not None else int(getattr(settings, "SLUG_LENGTH", DEFAULT_SLUG_LENGTH))
    return max(MIN_SLUG_LENGTH, min(MAX_SLUG_LENGTH, L))


def normalize_slug(candidate: str) -> str:
    return candidate.strip().lower()


def is_reserved(slug: str) -> bool:
    return slug.lower() in RESERVED_SLUGS


class SlugAllocator:
    """
    Generates and validates short identifiers.

    Args:
        length (Optional[int]): Default length for generated slugs
            (settings.SLUG_LENGTH when omitted), clamped to [4, 32].
    """

    def __init__(self, length: Optional[int] = None):
        self.length = _safe_len(length)
        self._rng = random.SystemRandom()

    def generate(self, length: Optional[int] = None) -> str:
        """Random slug of the default (or given, clamped) length."""
        L = self.length if length is None else _safe_len(length)
        return "".join(self._rng.choice(SLUG_ALPHABET) for _ in range(L))

    def normalize(self, candidate: str) -> str:
        return normalize_slug(candidate)

    def validate(self, slug: str) -> None:
        """
        Check a slug against length, pattern and reserved-word rules.

        Raises:
            SlugTooShort, SlugTooLong, SlugInvalidCharacters, SlugReserved
        """
        if len(slug) < MIN_SLUG_LENGTH:
            raise SlugTooShort(f"slug must be at least {MIN_SLUG_LENGTH} characters")
        if len(slug) > MAX_SLUG_LENGTH:
            raise SlugTooLong(f"slug must be at most {MAX_SLUG_LENGTH} characters")
        if not SLUG_PATTERN.fullmatch(slug):
            raise SlugInvalidCharacters(
                "slug may contain letters, digits, '-' and '_' and must start and end with a letter or digit"
            )
        if is_reserved(slug):
            raise SlugReserved(f"slug {slug!r} is reserved")
