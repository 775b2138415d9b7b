"""
Dependency wiring for the relational client and the legacy source.
"""

from __future__ import annotations

from taskboard.config import get_settings
from taskboard.db import DbClient, PostgresDbClient
from taskboard.legacy_source import FirebaseLegacySource, LegacySource

_db_client: DbClient | None = None
_legacy_source: LegacySource | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client built from DATABASE_URL.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    _db_client = PostgresDbClient(settings.database_url or "")
    return _db_client


def get_legacy_source() -> LegacySource:
    global _legacy_source
    if _legacy_source:
        return _legacy_source

    settings = get_settings()
    _legacy_source = FirebaseLegacySource(
        base_url=settings.firebase_url,
        timeout=settings.legacy_request_timeout,
    )
    return _legacy_source


def reset_clients() -> None:
    """Drop cached clients (useful in tests)."""
    global _db_client, _legacy_source
    _db_client = None
    _legacy_source = None
