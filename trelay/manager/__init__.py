from .link_manager import LinkManager
from .resolver import Redirect, RedirectResolver, Visit
from .slug import SlugAllocator
from .url_validator import URLValidator

__all__ = ["LinkManager", "Redirect", "RedirectResolver", "SlugAllocator", "URLValidator", "Visit"]
