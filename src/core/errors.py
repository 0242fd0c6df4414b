"""catvault exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations


class CatVaultError(Exception):
    """Base exception for all catvault failures."""


class CatVaultConfigError(CatVaultError):
    """Raised for invalid runtime configuration."""


class OpenError(CatVaultError):
    """Raised when the backing store file cannot be opened or initialized."""


class HashError(CatVaultError):
    """Raised when a version fingerprint cannot be derived."""


class WriteError(CatVaultError):
    """Raised when a version write transaction fails and is rolled back."""


class MetadataError(CatVaultError):
    """Raised for malformed metadata payloads or stored metadata fields."""


class ReadError(CatVaultError):
    """Raised for failures while reading stored versions."""


class VersionNotFoundError(ReadError):
    """Raised when a cat or version path does not exist in the store."""

    def __init__(self, cat_id: str, version_id: str | None = None) -> None:
        self.cat_id = cat_id
        self.version_id = version_id
        if version_id is None:
            message = (
                f"No versions stored for cat '{cat_id}'. "
                "Write a version before reading it back."
            )
        else:
            message = (
                f"Version '{version_id}' not found for cat '{cat_id}'. "
                "Use list_versions to discover valid version ids."
            )
        super().__init__(message)


class EngineError(CatVaultError):
    """Raised for embedded key/value engine rule violations."""


class DatabaseClosedError(EngineError):
    """Raised when the engine is used after close."""


class TransactionClosedError(EngineError):
    """Raised when a bucket or transaction is used after it ended."""


class TransactionNotWritableError(EngineError):
    """Raised when a write is attempted inside a read transaction."""


class BucketNameRequiredError(EngineError):
    """Raised for an empty bucket name."""


class KeyRequiredError(EngineError):
    """Raised for an empty key."""


class KeyTooLargeError(EngineError):
    """Raised when a key or bucket name exceeds the engine limit."""


class ValueTooLargeError(EngineError):
    """Raised when a value exceeds the engine limit."""


class IncompatibleValueError(EngineError):
    """Raised when a key is used as both a value and a bucket."""
