"""
Diff Engine: select the files whose fingerprint differs from remote state.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from niobium._utils import map_ordered
from niobium.models import FileRecord
from niobium.remote import RemoteStateReader

logger = logging.getLogger(__name__)


def diff(
    files: Sequence[FileRecord],
    reader: RemoteStateReader,
    *,
    workers: int = 1,
    progress: Any = None,
) -> list[FileRecord]:
    """
    Return the change set, in input order.

    A file is included when its fingerprint differs from the published one;
    a file that was never published is always included. Each key is looked
    up exactly once.
    """
    remote = map_ordered(
        lambda record: reader.current_fingerprint(record.remote_key),
        files,
        workers=workers,
        progress=progress,
    )

    changed = [record for record, published in zip(files, remote) if published != record.fingerprint]
    logger.info("Diff complete", extra={"file_count": len(files), "changed_count": len(changed)})
    return changed
