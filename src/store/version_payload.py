"""Serialization of version metadata and image payloads.

Metadata fields are stored as individual string-encoded entries.
The image payload is stored verbatim under a single key.
"""

from __future__ import annotations

from typing import Mapping

from core.constants import (
    KEY_IMG_DATA,
    KEY_META_CREATED_AT,
    KEY_META_ID,
    KEY_META_MIME_TYPE,
    KEY_META_TAGS,
    KEY_META_URL,
    METADATA_KEYS,
    TAG_SEPARATOR,
)
from core.errors import MetadataError, ReadError
from core.timestamps import format_rfc3339, parse_rfc3339
from core.types import CatMetadata
from store.namespaces import VersionBuckets


def metadata_to_fields(metadata: CatMetadata) -> dict[str, bytes]:
    """Encode metadata into bucket entries.

    Args:
        metadata: Metadata record.

    Returns:
        Mapping of metadata key to UTF-8 encoded value.
    """
    try:
        fields = {
            KEY_META_ID: metadata.cat_id,
            KEY_META_TAGS: TAG_SEPARATOR.join(metadata.tags),
            KEY_META_CREATED_AT: format_rfc3339(metadata.created_at),
            KEY_META_URL: metadata.url,
            KEY_META_MIME_TYPE: metadata.mime_type,
        }
        return {key: value.encode("utf-8") for key, value in fields.items()}
    except (AttributeError, TypeError, UnicodeEncodeError) as error:
        raise MetadataError(
            f"Cannot encode metadata for cat '{metadata.cat_id}': {error}."
        ) from error


def metadata_from_fields(fields: Mapping[bytes, bytes]) -> CatMetadata:
    """Decode bucket entries back into a metadata record.

    Raises:
        MetadataError: If a field is missing or malformed.
    """
    values: dict[str, str] = {}
    for key in METADATA_KEYS:
        raw_value = fields.get(key.encode("utf-8"))
        if raw_value is None:
            raise MetadataError(
                f"Stored metadata is missing field '{key}'. Rewrite the version to repair it."
            )
        values[key] = raw_value.decode("utf-8", errors="replace")
    tags_value = values[KEY_META_TAGS]
    try:
        created_at = parse_rfc3339(values[KEY_META_CREATED_AT])
    except ValueError as error:
        raise MetadataError(
            f"Stored created_at '{values[KEY_META_CREATED_AT]}' is not an RFC 3339 timestamp."
        ) from error
    return CatMetadata(
        cat_id=values[KEY_META_ID],
        tags=tuple(tags_value.split(TAG_SEPARATOR)) if tags_value else (),
        created_at=created_at,
        url=values[KEY_META_URL],
        mime_type=values[KEY_META_MIME_TYPE],
    )


def write_version_payload(buckets: VersionBuckets, metadata: CatMetadata, data: bytes) -> None:
    """Write every metadata field and the image payload of one version."""
    for key, value in metadata_to_fields(metadata).items():
        buckets.metadata.put(key, value)
    buckets.data.put(KEY_IMG_DATA, data)


def read_version_metadata(buckets: VersionBuckets) -> CatMetadata:
    """Read and decode the metadata of one version."""
    return metadata_from_fields(dict(buckets.metadata.items()))


def read_version_data(buckets: VersionBuckets) -> bytes:
    """Read the raw image payload of one version.

    Raises:
        ReadError: If the payload key is missing.
    """
    data = buckets.data.get(KEY_IMG_DATA)
    if data is None:
        raise ReadError("Stored version has no image payload. Rewrite the version to repair it.")
    return data
