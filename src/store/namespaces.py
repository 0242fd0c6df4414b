"""Fixed bucket addressing for cat versions.

Layout inside the engine:
    cats/
        <cat_id>/
            <version_id>/
                metadata/    cat_id, tags, created_at, url, mime_type
                data/        img_data

Every path in the store goes through these helpers, so callers
never pick bucket names themselves.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.constants import BUCKET_CATS, BUCKET_DATA, BUCKET_METADATA
from store.kv_engine import Bucket, Transaction


@dataclass(frozen=True)
class VersionBuckets:
    """Metadata and data buckets of one version."""

    metadata: Bucket
    data: Bucket


def ensure_root_bucket(tx: Transaction) -> Bucket:
    """Return the top-level cats bucket, creating it when missing."""
    return tx.create_bucket_if_not_exists(BUCKET_CATS)


def ensure_version_buckets(tx: Transaction, cat_id: str, version_id: str) -> VersionBuckets:
    """Locate or create the full bucket chain for one version.

    Each step is idempotent, so repeated calls with the same ids
    resolve to the same buckets.

    Args:
        tx: Writable transaction.
        cat_id: Cat namespace key.
        version_id: Version namespace key.

    Returns:
        Metadata and data buckets of the version.
    """
    cat_bucket = ensure_root_bucket(tx).create_bucket_if_not_exists(cat_id)
    version_bucket = cat_bucket.create_bucket_if_not_exists(version_id)
    return VersionBuckets(
        metadata=version_bucket.create_bucket_if_not_exists(BUCKET_METADATA),
        data=version_bucket.create_bucket_if_not_exists(BUCKET_DATA),
    )


def find_cat_bucket(tx: Transaction, cat_id: str) -> Bucket | None:
    """Return the bucket of one cat, or None when it was never written."""
    root = tx.bucket(BUCKET_CATS)
    if root is None:
        return None
    return root.bucket(cat_id)


def find_version_buckets(tx: Transaction, cat_id: str, version_id: str) -> VersionBuckets | None:
    """Locate the buckets of one version without creating anything.

    Returns:
        Version buckets, or None when any level of the path is missing.
    """
    cat_bucket = find_cat_bucket(tx, cat_id)
    if cat_bucket is None:
        return None
    version_bucket = cat_bucket.bucket(version_id)
    if version_bucket is None:
        return None
    metadata_bucket = version_bucket.bucket(BUCKET_METADATA)
    data_bucket = version_bucket.bucket(BUCKET_DATA)
    if metadata_bucket is None or data_bucket is None:
        return None
    return VersionBuckets(metadata=metadata_bucket, data=data_bucket)


def list_cat_ids(tx: Transaction) -> list[str]:
    """List stored cat ids in key order."""
    root = tx.bucket(BUCKET_CATS)
    if root is None:
        return []
    return [name.decode("utf-8") for name in root.bucket_names()]


def list_version_ids(tx: Transaction, cat_id: str) -> list[str]:
    """List version ids stored under one cat in key order."""
    cat_bucket = find_cat_bucket(tx, cat_id)
    if cat_bucket is None:
        return []
    return [name.decode("utf-8") for name in cat_bucket.bucket_names()]
