"""Versioned cat image store.

This module owns the store lifecycle and the version write path.
Each write derives a version id from the source URL and persists
metadata and image bytes in one engine transaction.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from types import TracebackType

from core.config import CatVaultConfig
from core.errors import (
    CatVaultError,
    EngineError,
    MetadataError,
    OpenError,
    ReadError,
    VersionNotFoundError,
    WriteError,
)
from core.logging_config import get_logger
from core.types import CatMetadata, StoredVersion, StoreStats, VersionRef, VersionSummary
from store.kv_engine import KVEngine
from store.namespaces import (
    ensure_root_bucket,
    ensure_version_buckets,
    find_version_buckets,
    list_cat_ids,
    list_version_ids,
)
from store.version_hash import derive_version_id
from store.version_payload import read_version_data, read_version_metadata, write_version_payload

_LOGGER = get_logger(__name__)


class CatStore:
    """Store handle owning one open engine file.

    Use ``CatStore.open`` to obtain an instance and ``close`` (or a
    ``with`` block) to release it.
    """

    def __init__(self, engine: KVEngine) -> None:
        """Wrap an already opened engine.

        Args:
            engine: Engine with the root bucket initialized.
        """
        self._engine = engine

    @classmethod
    def open(
        cls,
        path: str | Path | None = None,
        config: CatVaultConfig | None = None,
    ) -> "CatStore":
        """Open or create a store file.

        Args:
            path: Store file path; defaults to the configured path.
            config: Optional runtime configuration.

        Returns:
            Ready store handle.

        Raises:
            OpenError: If the file cannot be opened or initialized.
        """
        config = config or CatVaultConfig.from_env()
        db_path = Path(path) if path is not None else config.db_path
        engine = KVEngine.open(
            db_path,
            busy_timeout_seconds=config.busy_timeout_seconds,
            synchronous=config.synchronous,
        )
        try:
            with engine.update() as tx:
                ensure_root_bucket(tx)
        except EngineError as error:
            engine.close()
            raise OpenError(
                f"Failed to initialize cats namespace in {db_path}: {error}"
            ) from error
        _LOGGER.info("cat_store_opened", path=str(engine.path))
        return cls(engine)

    @property
    def path(self) -> Path:
        return self._engine.path

    @property
    def closed(self) -> bool:
        return self._engine.closed

    def write_version(self, metadata: CatMetadata, data: bytes) -> VersionRef:
        """Persist one fetched version of a cat.

        Writing the same cat id and URL again overwrites the same
        version slot. A different URL creates a new version.

        Args:
            metadata: Populated metadata record.
            data: Raw image bytes.

        Returns:
            Address of the written version.

        Raises:
            WriteError: If any step fails; nothing from this call is persisted.
        """
        try:
            version_id = derive_version_id(metadata.url)
            with self._engine.update() as tx:
                buckets = ensure_version_buckets(tx, metadata.cat_id, version_id)
                write_version_payload(buckets, metadata, data)
        except CatVaultError as error:
            _LOGGER.error(
                "cat_version_write_failed",
                cat_id=metadata.cat_id,
                url=metadata.url,
                error=str(error),
            )
            raise WriteError(
                f"Failed to write version of cat '{metadata.cat_id}' from {metadata.url}: {error}"
            ) from error
        _LOGGER.info(
            "cat_version_written",
            cat_id=metadata.cat_id,
            version_id=version_id,
            mime_type=metadata.mime_type,
            size_bytes=len(data),
        )
        return VersionRef(cat_id=metadata.cat_id, version_id=version_id)

    def read_version(self, cat_id: str, version_id: str) -> StoredVersion:
        """Load metadata and payload of one version.

        Raises:
            VersionNotFoundError: If the version does not exist.
            ReadError: If stored fields cannot be decoded.
        """
        try:
            with self._engine.view() as tx:
                buckets = find_version_buckets(tx, cat_id, version_id)
                if buckets is None:
                    raise VersionNotFoundError(cat_id, version_id)
                metadata = read_version_metadata(buckets)
                data = read_version_data(buckets)
        except (EngineError, MetadataError) as error:
            raise ReadError(
                f"Failed to read version '{version_id}' of cat '{cat_id}': {error}"
            ) from error
        return StoredVersion(version_id=version_id, metadata=metadata, data=data)

    def list_cats(self) -> list[str]:
        """List every stored cat id."""
        try:
            with self._engine.view() as tx:
                return list_cat_ids(tx)
        except EngineError as error:
            raise ReadError(f"Failed to list cats in {self.path}: {error}") from error

    def list_versions(self, cat_id: str) -> list[VersionSummary]:
        """List versions of a cat sorted by creation time.

        Args:
            cat_id: Cat identifier.

        Returns:
            Version summaries, oldest first; empty for an unknown cat.
        """
        summaries: list[VersionSummary] = []
        try:
            with self._engine.view() as tx:
                for version_id in list_version_ids(tx, cat_id):
                    buckets = find_version_buckets(tx, cat_id, version_id)
                    if buckets is None:
                        continue
                    summaries.append(
                        VersionSummary(version_id=version_id, metadata=read_version_metadata(buckets))
                    )
        except (EngineError, MetadataError) as error:
            raise ReadError(f"Failed to list versions of cat '{cat_id}': {error}") from error
        return sorted(summaries, key=lambda item: (item.metadata.created_at, item.version_id))

    def latest_version(self, cat_id: str) -> StoredVersion:
        """Load the most recently created version of a cat.

        Raises:
            VersionNotFoundError: If the cat has no versions.
        """
        summaries = self.list_versions(cat_id)
        if not summaries:
            raise VersionNotFoundError(cat_id)
        return self.read_version(cat_id, summaries[-1].version_id)

    def stats(self) -> StoreStats:
        """Collect diagnostic counters for the store."""
        try:
            engine_stats = self._engine.stats()
            with self._engine.view() as tx:
                cat_ids = list_cat_ids(tx)
                version_count = sum(len(list_version_ids(tx, cat_id)) for cat_id in cat_ids)
        except EngineError as error:
            raise ReadError(f"Failed to collect stats for {self.path}: {error}") from error
        return StoreStats(
            engine=engine_stats,
            cat_count=len(cat_ids),
            version_count=version_count,
        )

    def close(self) -> None:
        """Log final stats and release the engine file.

        Calling close on a closed store is a no-op.
        """
        if self._engine.closed:
            return
        try:
            stats_fields = asdict(self.stats())
        except CatVaultError as error:
            _LOGGER.warning("cat_store_stats_failed", path=str(self.path), error=str(error))
            stats_fields = {}
        self._engine.close()
        _LOGGER.info("cat_store_closed", path=str(self.path), **stats_fields)

    def __enter__(self) -> "CatStore":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()
