"""
Storage factory: pick the link and click backends from config
=============================================================

This module centralizes selection of the storage backend (in-memory vs
PostgreSQL) so the services stay ignorant of where data lives.

- Reads the environment **at call time** so tests can flip backends with
  monkeypatch; the values in `settings` are only the fallback.
- Imports the PostgreSQL backend **only if** it is selected.

Environment variables
---------------------
- TRELAY_STORAGE_BACKEND: "memory" (default) or "postgres"
- TRELAY_DB_DSN:          DSN string if backend == "postgres"
"""

import logging
import os
from typing import Any, Optional, Tuple

from ..config import settings
from .base import BaseClickStore, BaseLinkStore
from .memory import MemoryClickStore, MemoryLinkStore

log = logging.getLogger(__name__)


def _backend(backend: Optional[str]) -> str:
    return (backend or os.getenv("TRELAY_STORAGE_BACKEND") or settings.STORAGE_BACKEND or "memory").strip().lower()


def _dsn(kwargs: dict) -> str:
    dsn = kwargs.pop("dsn", None) or os.getenv("TRELAY_DB_DSN") or settings.DB_DSN
    if not dsn:
        raise ValueError("DB_DSN is required for postgres backend (env TRELAY_DB_DSN)")
    return dsn


def get_link_store(backend: Optional[str] = None, **kwargs: Any) -> BaseLinkStore:
    """
    Return a link store for the configured backend.

    Parameters
    ----------
    backend : str, optional
        "memory" or "postgres". If omitted, reads TRELAY_STORAGE_BACKEND.
    kwargs : dict
        Extra args for the backend constructor. For postgres, use dsn="...".
    """
    be = _backend(backend)
    log.info("Selected link storage backend: %r", be)

    if be == "memory":
        return MemoryLinkStore()

    if be == "postgres":
        from .db_storage import PostgresLinkStore

        dsn = _dsn(kwargs)
        return PostgresLinkStore(dsn=dsn, **kwargs)

    raise ValueError(f"Unknown storage backend: {be!r}")


def get_click_store(backend: Optional[str] = None, **kwargs: Any) -> BaseClickStore:
    """Click store counterpart of `get_link_store`; accepts the same arguments plus clock=."""
    be = _backend(backend)
    log.info("Selected click storage backend: %r", be)

    if be == "memory":
        return MemoryClickStore(clock=kwargs.get("clock"))

    if be == "postgres":
        from .db_storage import PostgresClickStore

        dsn = _dsn(kwargs)
        return PostgresClickStore(dsn=dsn, **kwargs)

    raise ValueError(f"Unknown storage backend: {be!r}")


def get_stores(backend: Optional[str] = None, **kwargs: Any) -> Tuple[BaseLinkStore, BaseClickStore]:
    """Both stores on the same backend."""
    link_kwargs = {k: v for k, v in kwargs.items() if k != "clock"}
    return get_link_store(backend, **link_kwargs), get_click_store(backend, **kwargs)
