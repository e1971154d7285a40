"""
Credential primitives used by the link lifecycle.

The core treats these as opaque: it only hashes a link password on write
and verifies a candidate on read.
"""

from .passwords import hash_password, verify_password

__all__ = ["hash_password", "verify_password"]
