"""
Publisher: upload changed files, then invalidate their routes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from niobium._utils import map_ordered
from niobium.models import FileRecord, PublishResult
from niobium.remote import CDN, ObjectStore

logger = logging.getLogger(__name__)


def default_caller_reference() -> str:
    """Milliseconds since the epoch; unique per invalidation batch."""
    return str(int(time.time() * 1000))


class Publisher:
    """
    Writes a change set to the bucket and invalidates the distribution.

    Uploads use ``FileRecord.remote_key``; the invalidation uses
    ``FileRecord.route``. A failed upload aborts before any invalidation and
    leaves already-uploaded objects in place.
    """

    def __init__(
        self,
        store: ObjectStore,
        cdn: CDN,
        *,
        bucket: str,
        distribution_id: str,
        metadata_key: str = "niobiumhash",
        caller_reference: Callable[[], str] = default_caller_reference,
        workers: int = 1,
    ) -> None:
        self._store = store
        self._cdn = cdn
        self._bucket = bucket
        self._distribution_id = distribution_id
        self._metadata_key = metadata_key
        self._caller_reference = caller_reference
        self._workers = workers

    def upload(self, record: FileRecord) -> str:
        self._store.put_object(
            self._bucket,
            record.remote_key,
            record.body,
            acl=record.acl,
            content_type=record.content_type,
            cache_control=record.cache_control,
            metadata={self._metadata_key: record.fingerprint},
        )
        logger.debug("Uploaded object", extra={"key": record.remote_key})
        return record.remote_key

    def publish(self, change_set: Sequence[FileRecord], progress: Any = None) -> PublishResult:
        """Upload every changed file, then issue one invalidation for their routes."""
        if not change_set:
            logger.info("Nothing changed; skipping upload and invalidation")
            return PublishResult()

        uploaded = map_ordered(self.upload, change_set, workers=self._workers, progress=progress)

        paths = [record.route for record in change_set]
        invalidation_id = self._cdn.create_invalidation(self._distribution_id, self._caller_reference(), paths)
        logger.info(
            "Invalidation requested",
            extra={"invalidation_id": invalidation_id, "path_count": len(paths)},
        )

        return PublishResult(
            uploaded_keys=tuple(uploaded),
            invalidated_paths=tuple(paths),
            invalidation_id=invalidation_id,
        )
