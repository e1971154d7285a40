"""
Error taxonomy for trelay.

Three families leave the core:
    - ValidationError: a bad slug, URL or field. Always safe to show the caller.
      Subclasses ValueError so plain `except ValueError` call sites keep working.
    - StateError: the link exists (or not) in a state that forbids the request.
      Each carries an `http_status` hint for the API layer.
    - StorageError: opaque backend failure; the original exception is chained.
"""

from typing import Optional


class TrelayError(Exception):
    """Base class for every error raised by trelay."""


# ---------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------
class ValidationError(TrelayError, ValueError):
    """A field-addressable input error."""

    field: str = ""
    default_message: str = "validation error"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.message = message or self.default_message
        if field is not None:
            self.field = field
        super().__init__(self.message)


class SlugTooShort(ValidationError):
    field = "slug"
    default_message = "slug is too short"


class SlugTooLong(ValidationError):
    field = "slug"
    default_message = "slug is too long"


class SlugInvalidCharacters(ValidationError):
    field = "slug"
    default_message = "slug contains invalid characters"


class SlugReserved(ValidationError):
    field = "slug"
    default_message = "slug is reserved"


class URLInvalid(ValidationError):
    field = "url"
    default_message = "URL is invalid"


class URLTooLong(ValidationError):
    field = "url"
    default_message = "URL exceeds maximum length"


class URLSchemeNotAllowed(ValidationError):
    field = "url"
    default_message = "URL must use http or https scheme"


class URLHostBlocked(ValidationError):
    field = "url"
    default_message = "this host cannot be shortened"


class URLUnreachable(ValidationError):
    field = "url"
    default_message = "URL is unreachable"


# ---------------------------------------------------------------------
# State
# ---------------------------------------------------------------------
class StateError(TrelayError):
    """The requested transition or read is not allowed in the link's state."""

    http_status: int = 400
    default_message: str = "invalid link state"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class LinkNotFound(StateError):
    http_status = 404
    default_message = "link not found"


class LinkDeleted(StateError):
    # Visitors get the same answer as for a missing link.
    http_status = 404
    default_message = "link has been deleted"


class LinkExpired(StateError):
    http_status = 410
    default_message = "link has expired"


class SlugTaken(StateError):
    http_status = 409
    default_message = "slug is already taken"


class PasswordRequired(StateError):
    http_status = 401
    default_message = "password is required for this link"


class PasswordIncorrect(StateError):
    http_status = 401
    default_message = "password is incorrect"


# ---------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------
class StorageError(TrelayError):
    """Backend failure. Surfaced to end users as a generic internal error."""
