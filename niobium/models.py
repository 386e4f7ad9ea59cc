"""
Domain records passed between pipeline stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True, slots=True)
class StaticMount:
    """A directory served as static files under a URL prefix.

    Attributes:
        prefix: URL prefix the directory is mounted at (``"/"`` for the root).
        directory: Absolute directory, resolved when the static files were created.
    """

    prefix: str
    directory: Path


@dataclass(frozen=True, slots=True)
class DiscoveredApp:
    """A loaded host application and everything it registered.

    Attributes:
        app: The real ASGI application, unwrapped.
        dynamic_routes: Paths registered with a GET handler, in registration order.
        static_mounts: Static directories, in mount order.
    """

    app: Any
    dynamic_routes: tuple[str, ...]
    static_mounts: tuple[StaticMount, ...]


@dataclass(frozen=True, slots=True)
class FileRecord:
    """One snapshotted route, ready to compare and upload.

    ``route`` is the URL path (used for cache invalidation); ``remote_key`` is
    the object key (used for uploads). The two never mix.
    """

    route: str
    remote_key: str
    body: bytes
    content_type: str | None
    cache_control: str | None
    fingerprint: str
    acl: str = "public-read"


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Outcome of publishing one change set."""

    uploaded_keys: tuple[str, ...] = ()
    invalidated_paths: tuple[str, ...] = ()
    invalidation_id: str | None = None


@dataclass(frozen=True, slots=True)
class DeployResult:
    """Summary of a full deployment run."""

    routes: tuple[str, ...]
    files: tuple[FileRecord, ...]
    changed: tuple[FileRecord, ...]
    publish: PublishResult = field(default_factory=PublishResult)
    dry_run: bool = False

    @property
    def changed_routes(self) -> list[str]:
        return [f.route for f in self.changed]
