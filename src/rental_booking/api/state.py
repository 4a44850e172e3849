"""
Shared engine instance for the API.

Built lazily from settings so importing the app does not touch the
database; tests swap it out through app.dependency_overrides.
"""
from typing import Optional

from ..config.settings import get_settings
from ..engine import BookingEngine
from ..stores.sql import SqlStore

_engine: Optional[BookingEngine] = None


def get_engine() -> BookingEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        store = SqlStore(settings.database_url, busy_timeout_ms=settings.sqlite_busy_timeout_ms)
        _engine = BookingEngine(store, store, settings=settings)
    return _engine
