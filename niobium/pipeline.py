"""
Niobium - Deployment Pipeline
=============================
Load the host app, snapshot every route, and publish what changed.

Stages run strictly in order: all fetches finish before diffing starts,
all lookups finish before the first upload, and all uploads finish before
the single invalidation. The ephemeral server is shut down on every exit
path before an error propagates.
"""

from __future__ import annotations

import logging

import requests
from tqdm import tqdm

from niobium.config import Settings, get_settings
from niobium.diff import diff
from niobium.interception import load_app
from niobium.logging_config import PerformanceTracker, log_event
from niobium.models import DeployResult, PublishResult
from niobium.publisher import Publisher
from niobium.remote import CDN, ObjectStore, RemoteStateReader
from niobium.routes import dedupe_routes, expand_routes
from niobium.server import ephemeral_server
from niobium.snapshot import SnapshotFetcher

logger = logging.getLogger(__name__)


def _bar(desc: str, total: int, unit: str, enabled: bool) -> tqdm:
    return tqdm(total=total, desc=desc, unit=unit, disable=not enabled, leave=enabled)


def deploy(
    *,
    bucket: str,
    distribution_id: str,
    store: ObjectStore,
    cdn: CDN,
    app_target: str | None = None,
    settings: Settings | None = None,
    dry_run: bool = False,
    show_progress: bool | None = None,
) -> DeployResult:
    """
    Run one deployment.

    Args:
        bucket: Target bucket name.
        distribution_id: Target CDN distribution.
        store: Object store client.
        cdn: CDN client.
        app_target: Script path or ``module:attr``; defaults to ``settings.app_target``.
        settings: Settings to use; defaults to the global instance.
        dry_run: Stop after the diff without uploading or invalidating.
        show_progress: Override ``settings.show_progress``.

    Returns:
        DeployResult describing routes, snapshots and what was published.
    """
    settings = settings or get_settings()
    app_target = app_target or settings.app_target
    progress = settings.show_progress if show_progress is None else show_progress

    with PerformanceTracker("load_app", target=app_target):
        discovered = load_app(app_target)

    with PerformanceTracker("expand_routes") as tracker:
        routes = dedupe_routes(expand_routes(discovered.dynamic_routes, discovered.static_mounts))
        tracker.extra["route_count"] = len(routes)

    with ephemeral_server(
        discovered.app,
        host=settings.host,
        startup_timeout=settings.startup_timeout,
    ) as address, requests.Session() as session:
        fetcher = SnapshotFetcher(
            address,
            session=session,
            timeout=settings.request_timeout,
            workers=settings.workers,
            fingerprint_version=settings.fingerprint_version,
        )
        with PerformanceTracker("fetch_routes") as tracker, _bar("Fetching routes", len(routes), "route", progress) as bar:
            files = fetcher.fetch_all(routes, progress=bar)
            tracker.extra["file_count"] = len(files)

        reader = RemoteStateReader(store, bucket, metadata_key=settings.metadata_key)
        with PerformanceTracker("find_changes") as tracker, _bar("Finding changed files", len(files), "file", progress) as bar:
            changed = diff(files, reader, workers=settings.workers, progress=bar)
            tracker.extra["changed_count"] = len(changed)

        log_event("changes_detected", changed_count=len(changed), file_count=len(files), dry_run=dry_run)

        if dry_run:
            published = PublishResult()
        else:
            publisher = Publisher(
                store,
                cdn,
                bucket=bucket,
                distribution_id=distribution_id,
                metadata_key=settings.metadata_key,
                workers=settings.workers,
            )
            with PerformanceTracker("publish"), _bar("Uploading changed files", len(changed), "file", progress) as bar:
                published = publisher.publish(changed, progress=bar)

    return DeployResult(
        routes=tuple(routes),
        files=tuple(files),
        changed=tuple(changed),
        publish=published,
        dry_run=dry_run,
    )
