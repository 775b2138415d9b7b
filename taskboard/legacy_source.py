"""
Read access to the legacy Firebase realtime database.

Supports an in-memory source for tests/local runs and an HTTP-backed source
that reads the public REST export (``<base>/<collection>.json``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import requests

from taskboard.errors import SourceUnavailable

USERS_PATH = "/users"
CONTACTS_PATH = "/contact"
TASKS_PATH = "/task"

REQUEST_TIMEOUT = 30  # seconds


class LegacySource(Protocol):
    """Fetches one top-level collection keyed by legacy ID."""

    def fetch(self, collection_path: str) -> dict[str, Any]:
        ...


def _as_collection(path: str, body: Any) -> dict[str, Any]:
    if body is None:
        return {}
    if isinstance(body, Mapping):
        return {str(key): value for key, value in body.items()}
    if isinstance(body, list):
        # Integer-keyed collections come back as arrays with null holes.
        return {
            str(index): value for index, value in enumerate(body) if value is not None
        }
    raise SourceUnavailable(path, f"unexpected body of type {type(body).__name__}")


@dataclass
class InMemoryLegacySource:
    """Test double holding collections in a dict."""

    collections: dict[str, Any] = field(default_factory=dict)
    unavailable: set[str] = field(default_factory=set)
    requested: list[str] = field(default_factory=list)

    def fetch(self, collection_path: str) -> dict[str, Any]:
        self.requested.append(collection_path)
        if collection_path in self.unavailable:
            raise SourceUnavailable(collection_path, "marked unavailable")
        return _as_collection(collection_path, self.collections.get(collection_path))


@dataclass
class FirebaseLegacySource:
    """Reads collections over the Firebase REST API without authentication."""

    base_url: str
    timeout: float = REQUEST_TIMEOUT

    def url_for(self, collection_path: str) -> str:
        return f"{self.base_url.rstrip('/')}{collection_path}.json"

    def fetch(self, collection_path: str) -> dict[str, Any]:
        url = self.url_for(collection_path)
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise SourceUnavailable(collection_path, str(exc)) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise SourceUnavailable(collection_path, f"invalid JSON: {exc}") from exc
        return _as_collection(collection_path, body)
