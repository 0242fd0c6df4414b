"""Shared typed models.

This module defines immutable data models used by the store, SDK,
and CLI layers to keep interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from core.errors import MetadataError
from core.timestamps import parse_rfc3339


@dataclass(frozen=True)
class CatMetadata:
    """Descriptive attributes of one fetched cat image.

    Attributes:
        cat_id: Caller-assigned id, stable across fetches of the same cat.
        tags: Ordered tag list reported by the fetch service.
        created_at: Creation timestamp reported by the fetch service.
        url: Source locator the image bytes were fetched from.
        mime_type: Declared MIME type of the image bytes.
    """

    cat_id: str
    tags: tuple[str, ...]
    created_at: datetime
    url: str
    mime_type: str

    @classmethod
    def from_api_payload(cls, payload: Mapping[str, Any]) -> "CatMetadata":
        """Build metadata from a fetch service JSON payload.

        Args:
            payload: Decoded JSON object describing one cat.

        Returns:
            Parsed metadata record.

        Raises:
            MetadataError: If required fields are missing or malformed.
        """
        cat_id = _first_present(payload, ("id", "_id", "cat_id"))
        url = _first_present(payload, ("url",))
        created_at_raw = _first_present(payload, ("created_at", "createdAt"))
        mime_type = _first_present(payload, ("mimetype", "mime_type", "mimeType"))
        tags_value = payload.get("tags") or []
        if not isinstance(tags_value, (list, tuple)):
            raise MetadataError(
                f"Invalid tags in metadata payload: expected a list, got {type(tags_value).__name__}."
            )
        try:
            created_at = parse_rfc3339(str(created_at_raw))
        except ValueError as error:
            raise MetadataError(
                f"Invalid created_at in metadata payload: '{created_at_raw}'. "
                "Expected an RFC 3339 timestamp."
            ) from error
        return cls(
            cat_id=str(cat_id),
            tags=tuple(str(tag) for tag in tags_value),
            created_at=created_at,
            url=str(url),
            mime_type=str(mime_type),
        )


@dataclass(frozen=True)
class VersionRef:
    """Address of one stored version."""

    cat_id: str
    version_id: str


@dataclass(frozen=True)
class VersionSummary:
    """Metadata of one stored version without its payload."""

    version_id: str
    metadata: CatMetadata


@dataclass(frozen=True)
class StoredVersion:
    """One stored version with metadata and payload.

    Attributes:
        version_id: Fingerprint of the source URL.
        metadata: Decoded metadata fields.
        data: Raw image bytes exactly as written.
    """

    version_id: str
    metadata: CatMetadata
    data: bytes


@dataclass(frozen=True)
class EngineStats:
    """Diagnostic counters reported by the key/value engine."""

    page_size: int
    page_count: int
    freelist_count: int
    bucket_count: int
    key_count: int


@dataclass(frozen=True)
class StoreStats:
    """Diagnostic counters reported by the cat store.

    Attributes:
        engine: Low-level engine counters.
        cat_count: Number of cat namespaces.
        version_count: Number of version namespaces across all cats.
    """

    engine: EngineStats
    cat_count: int
    version_count: int


def _first_present(payload: Mapping[str, Any], names: tuple[str, ...]) -> Any:
    """Return the first non-missing value among alias field names.

    Raises:
        MetadataError: If none of the names is present.
    """
    for name in names:
        if payload.get(name) is not None:
            return payload[name]
    raise MetadataError(
        f"Metadata payload is missing required field '{names[0]}'. "
        "Check the fetch service response."
    )
