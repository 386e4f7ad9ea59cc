"""
Snapshot Fetcher: one GET per route against the ephemeral server.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any
from urllib.parse import quote

import requests

from niobium._utils import map_ordered
from niobium.exceptions import FetchError
from niobium.fingerprint import compute_fingerprint
from niobium.models import FileRecord
from niobium.routes import remote_key_for

logger = logging.getLogger(__name__)


class SnapshotFetcher:
    """
    Fetches routes and turns each response into a ``FileRecord``.

    Redirects are captured as-is and any status code counts as content;
    only transport failures abort the snapshot.

    Args:
        base_address: Server address without trailing slash, e.g. ``http://127.0.0.1:8123``.
        session: Optional ``requests.Session`` to reuse.
        timeout: Per-request timeout in seconds.
        workers: Concurrent requests.
        fingerprint_version: Format tag passed to ``compute_fingerprint``.
    """

    def __init__(
        self,
        base_address: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        workers: int = 1,
        fingerprint_version: str = "v1",
    ) -> None:
        self._base_address = base_address.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout
        self._workers = workers
        self._fingerprint_version = fingerprint_version

    def fetch(self, route: str) -> FileRecord:
        """Fetch a single route."""
        # The route stays unquoted; it is also the invalidation path
        url = f"{self._base_address}{quote(route)}"
        try:
            response = self._session.get(url, allow_redirects=False, timeout=self._timeout)
        except requests.RequestException as exc:
            raise FetchError(route, reason=str(exc)) from exc

        body = response.content
        content_type = response.headers.get("content-type")
        cache_control = response.headers.get("cache-control")

        if response.status_code >= 400:
            logger.warning("Route returned an error status", extra={"route": route, "status_code": response.status_code})

        return FileRecord(
            route=route,
            remote_key=remote_key_for(route),
            body=body,
            content_type=content_type,
            cache_control=cache_control,
            fingerprint=compute_fingerprint(
                body,
                cache_control=cache_control,
                content_type=content_type,
                version=self._fingerprint_version,
            ),
        )

    def fetch_all(self, routes: Iterable[str], progress: Any = None) -> list[FileRecord]:
        """Fetch every route, preserving order. The first failure aborts the batch."""
        return map_ordered(self.fetch, routes, workers=self._workers, progress=progress)
