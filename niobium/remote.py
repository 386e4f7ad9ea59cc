"""
Niobium - Remote State
======================
Object-store and CDN contracts, their boto3-backed implementations, and the
reader for previously published fingerprints.

The pipeline only depends on the ``ObjectStore`` and ``CDN`` protocols; the
boto3 clients are built once per process by ``create_clients`` and passed in.

Usage:
    s3, cloudfront = create_clients(region="us-east-1")
    reader = RemoteStateReader(S3ObjectStore(s3), "my-bucket")
    reader.current_fingerprint("index.html")
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from niobium.exceptions import InvalidationError, RemoteStateError, UploadError

logger = logging.getLogger(__name__)

S3_API_VERSION = "2006-03-01"
CLOUDFRONT_API_VERSION = "2020-05-31"

_NOT_FOUND_CODES = frozenset({"404", "NotFound", "NoSuchKey"})


class ObjectStore(Protocol):
    """Minimal object-store surface used by the pipeline."""

    def head_object(self, bucket: str, key: str) -> dict[str, str] | None:
        """Return the object's user metadata, or ``None`` if it does not exist."""
        ...

    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        *,
        acl: str,
        content_type: str | None,
        cache_control: str | None,
        metadata: dict[str, str],
    ) -> None:
        ...


class CDN(Protocol):
    """Minimal CDN surface used by the pipeline."""

    def create_invalidation(self, distribution_id: str, caller_reference: str, paths: Sequence[str]) -> str:
        """Request invalidation of ``paths`` and return the invalidation id."""
        ...


# =============================================================================
# boto3 implementations
# =============================================================================


def create_clients(region: str | None = None) -> tuple[Any, Any]:
    """Build the S3 and CloudFront clients; credentials come from the boto3 chain."""
    s3 = boto3.client("s3", region_name=region, api_version=S3_API_VERSION)
    cloudfront = boto3.client("cloudfront", region_name=region, api_version=CLOUDFRONT_API_VERSION)
    return s3, cloudfront


class S3ObjectStore:
    """``ObjectStore`` backed by a boto3 S3 client."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def head_object(self, bucket: str, key: str) -> dict[str, str] | None:
        try:
            response = self._client.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                return None
            raise RemoteStateError(key, reason=str(exc)) from exc
        except BotoCoreError as exc:
            raise RemoteStateError(key, reason=str(exc)) from exc
        return dict(response.get("Metadata") or {})

    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        *,
        acl: str,
        content_type: str | None,
        cache_control: str | None,
        metadata: dict[str, str],
    ) -> None:
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": body,
            "ACL": acl,
            "Metadata": metadata,
        }
        if content_type:
            params["ContentType"] = content_type
        if cache_control:
            params["CacheControl"] = cache_control

        try:
            self._client.put_object(**params)
        except (ClientError, BotoCoreError) as exc:
            raise UploadError(key, reason=str(exc)) from exc


class CloudFrontCDN:
    """``CDN`` backed by a boto3 CloudFront client."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def create_invalidation(self, distribution_id: str, caller_reference: str, paths: Sequence[str]) -> str:
        try:
            response = self._client.create_invalidation(
                DistributionId=distribution_id,
                InvalidationBatch={
                    "CallerReference": caller_reference,
                    "Paths": {"Quantity": len(paths), "Items": list(paths)},
                },
            )
        except (ClientError, BotoCoreError) as exc:
            raise InvalidationError(distribution_id, reason=str(exc)) from exc
        return response["Invalidation"]["Id"]


# =============================================================================
# Remote State Reader
# =============================================================================


class RemoteStateReader:
    """
    Reads the last published fingerprint of each object.

    State is never cached: every call asks the store.
    """

    def __init__(self, store: ObjectStore, bucket: str, *, metadata_key: str = "niobiumhash") -> None:
        self._store = store
        self._bucket = bucket
        self._metadata_key = metadata_key

    @property
    def bucket(self) -> str:
        return self._bucket

    def current_fingerprint(self, remote_key: str) -> str | None:
        """Return the stored fingerprint, or ``None`` if the object was never published."""
        metadata = self._store.head_object(self._bucket, remote_key)
        if metadata is None:
            logger.debug("Remote object absent", extra={"key": remote_key})
            return None
        return metadata.get(self._metadata_key) or None
