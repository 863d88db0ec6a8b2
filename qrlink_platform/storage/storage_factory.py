"""
Storage factory – switch storage backend from config (lazy env version)
======================================================================

This module centralizes selection of the storage backend (in-memory vs DB)
so the rest of the app can stay ignorant of where data lives.

- Reads environment **at call time** to avoid stale values in tests.
- Imports the DB backend **only if** the selected backend is "postgres".

Environment variables
---------------------
- QRLINK_STORAGE_BACKEND: "memory" (default) or "postgres"
- QRLINK_DB_DSN:          DSN string if backend=="postgres"

LLM Prompt
----------
You are extending storage backends. Keep defaults safe ("memory"). Read env lazily
inside the factory function. Don't import heavy DB modules unless needed.
"""

from typing import Optional
import logging
import os

from qrlink_platform.storage.base import BaseStorage
from qrlink_platform.storage.storage import Storage

log = logging.getLogger(__name__)


def get_storage(backend: Optional[str] = None, **kwargs) -> BaseStorage:
    """
    Return a storage backend based on configuration.

    Parameters
    ----------
    backend : str, optional
        "memory" (default) or "postgres". If omitted, reads QRLINK_STORAGE_BACKEND.
    kwargs : dict
        Extra args passed to the backend constructor. For postgres, use dsn="...".

    Returns
    -------
    BaseStorage-compatible instance
    """
    be = (backend or os.getenv("QRLINK_STORAGE_BACKEND", "memory")).strip().lower()
    log.info("Selected storage backend: %r", be)

    if be == "memory":
        return Storage()

    if be == "postgres":
        dsn = kwargs.get("dsn") or os.getenv("QRLINK_DB_DSN", "")
        if not dsn:
            raise ValueError("DB_DSN is required for postgres backend (env QRLINK_DB_DSN)")
        # Local import to avoid hard dependency when not using postgres
        from qrlink_platform.storage.db_storage import DBStorage
        return DBStorage(dsn=dsn)

    raise ValueError(f"Unknown storage backend: {be!r}")
