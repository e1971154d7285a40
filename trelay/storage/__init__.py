from .base import BaseClickStore, BaseLinkStore
from .memory import MemoryClickStore, MemoryLinkStore
from .storage_factory import get_click_store, get_link_store, get_stores

__all__ = [
    "BaseClickStore",
    "BaseLinkStore",
    "MemoryClickStore",
    "MemoryLinkStore",
    "get_click_store",
    "get_link_store",
    "get_stores",
]
