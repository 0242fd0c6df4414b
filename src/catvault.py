"""Public SDK surface for catvault.

This module provides a stable import path for store users.
It re-exports the store handle, typed models, and error types.
"""

from __future__ import annotations

from core.config import CatVaultConfig
from core.errors import (
    CatVaultError,
    HashError,
    OpenError,
    ReadError,
    VersionNotFoundError,
    WriteError,
)
from core.types import CatMetadata, StoredVersion, StoreStats, VersionRef, VersionSummary
from store.cat_store import CatStore
from store.version_hash import derive_version_id

__all__ = [
    "CatMetadata",
    "CatStore",
    "CatVaultConfig",
    "CatVaultError",
    "HashError",
    "OpenError",
    "ReadError",
    "StoreStats",
    "StoredVersion",
    "VersionNotFoundError",
    "VersionRef",
    "VersionSummary",
    "WriteError",
    "derive_version_id",
]
