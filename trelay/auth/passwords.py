"""
Password hashing for protected links.

Uses bcrypt (salted, deliberately slow). The cost factor comes from
settings.BCRYPT_ROUNDS unless passed explicitly.
"""

from typing import Optional

import bcrypt

from ..config import settings


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """
    Return a bcrypt hash of the given password.

    Args:
        password (str): Plain-text password.
        rounds (Optional[int]): Cost factor; defaults to settings.BCRYPT_ROUNDS.

    Returns:
        str: The encoded hash, including its salt and cost.
    """
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time check of a candidate against a stored hash. Malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
    except ValueError:
        return False
