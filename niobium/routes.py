"""
Route expansion: turn registrations into concrete URL paths.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from niobium.exceptions import RouteDiscoveryError
from niobium.models import StaticMount

logger = logging.getLogger(__name__)


def _list_files(directory: Path) -> list[str]:
    """Relative POSIX paths of every visible regular file under ``directory``."""
    files = []
    for path in sorted(directory.rglob("*")):
        relative = path.relative_to(directory)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if path.is_file():
            files.append(relative.as_posix())
    return files


def expand_routes(dynamic_routes: Iterable[str], static_mounts: Iterable[StaticMount]) -> list[str]:
    """
    Flatten dynamic routes and static mounts into URL paths.

    Dynamic routes come first, verbatim. Each mount then contributes one path
    per file under its directory, in mount order. Duplicates are kept; see
    ``dedupe_routes``.

    Args:
        dynamic_routes: Paths registered with a handler.
        static_mounts: Mounted static directories.

    Returns:
        Ordered list of URL paths.

    Raises:
        RouteDiscoveryError: If a mounted directory does not exist.

    Examples:
        >>> expand_routes(["/"], [])
        ['/']
    """
    routes = list(dynamic_routes)

    for mount in static_mounts:
        if not mount.directory.is_dir():
            raise RouteDiscoveryError(
                "Static mount directory does not exist",
                prefix=mount.prefix,
                directory=str(mount.directory),
            )
        base = mount.prefix.rstrip("/")
        routes.extend(f"{base}/{relative}" for relative in _list_files(mount.directory))

    return routes


def dedupe_routes(routes: Sequence[str]) -> list[str]:
    """Drop repeated routes, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for route in routes:
        if route in seen:
            logger.warning("Duplicate route dropped", extra={"route": route})
            continue
        seen.add(route)
        unique.append(route)
    return unique


def remote_key_for(route: str) -> str:
    """
    Object key for a route.

    Examples:
        >>> remote_key_for("/")
        'index.html'
        >>> remote_key_for("/static/logo.png")
        'static/logo.png'
    """
    if route == "/":
        return "index.html"
    return route[1:] if route.startswith("/") else route
