"""catvault CLI entry points.
This module exposes store commands for writing and inspecting versions.
It maps argparse commands onto CatStore calls.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence

from core.config import CatVaultConfig
from core.errors import MetadataError
from core.logging_config import configure_logging
from core.timestamps import format_rfc3339
from core.types import CatMetadata
from store.cat_store import CatStore


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="catvault", description="Versioned cat image store")
    parser.add_argument("--db", help="Override CATVAULT_DB_PATH for this command")
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Emit structured store events to stderr at this level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_put_command(subparsers)
    _add_cats_command(subparsers)
    _add_versions_command(subparsers)
    _add_export_command(subparsers)
    _add_stats_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the catvault CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.log_level:
        configure_logging(args.log_level)
    with _open_store(args.db) as store:
        if args.command == "put":
            return _run_put_command(store, args)
        if args.command == "cats":
            return _run_cats_command(store)
        if args.command == "versions":
            return _run_versions_command(store, args)
        if args.command == "export":
            return _run_export_command(store, args)
        if args.command == "stats":
            return _run_stats_command(store)
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _open_store(db_path: str | None) -> CatStore:
    """Open the store with an optional path override.

    Args:
        db_path: Optional override path.

    Returns:
        Open store handle.
    """
    config = CatVaultConfig.from_env()
    if db_path:
        config = replace(config, db_path=Path(db_path).expanduser().resolve())
    return CatStore.open(config=config)


def _run_put_command(store: CatStore, args: argparse.Namespace) -> int:
    """Handle put command.

    Args:
        store: Open store.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    metadata = _read_metadata_file(Path(args.metadata_file))
    data = Path(args.image_file).read_bytes()
    ref = store.write_version(metadata, data)
    print(f"{ref.cat_id}\t{ref.version_id}")
    return 0


def _run_cats_command(store: CatStore) -> int:
    for cat_id in store.list_cats():
        print(cat_id)
    return 0


def _run_versions_command(store: CatStore, args: argparse.Namespace) -> int:
    """Handle versions command.

    Args:
        store: Open store.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    for summary in store.list_versions(args.cat_id):
        metadata = summary.metadata
        print(
            f"{summary.version_id}\t"
            f"{format_rfc3339(metadata.created_at)}\t"
            f"{metadata.mime_type}\t"
            f"{metadata.url}"
        )
    return 0


def _run_export_command(store: CatStore, args: argparse.Namespace) -> int:
    """Handle export command.

    Args:
        store: Open store.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    if args.version_id:
        version = store.read_version(args.cat_id, args.version_id)
    else:
        version = store.latest_version(args.cat_id)
    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(version.data)
    print(output_path)
    return 0


def _run_stats_command(store: CatStore) -> int:
    stats = store.stats()
    print(f"cats={stats.cat_count}")
    print(f"versions={stats.version_count}")
    print(f"buckets={stats.engine.bucket_count}")
    print(f"keys={stats.engine.key_count}")
    print(f"pages={stats.engine.page_count}")
    print(f"page_size={stats.engine.page_size}")
    print(f"free_pages={stats.engine.freelist_count}")
    return 0


def _read_metadata_file(metadata_path: Path) -> CatMetadata:
    """Parse a fetch service metadata JSON file.

    Args:
        metadata_path: Path to the JSON file.

    Returns:
        Parsed metadata record.

    Raises:
        MetadataError: If the file is not a JSON object.
    """
    try:
        payload = json.loads(metadata_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise MetadataError(
            f"Failed to parse metadata file {metadata_path}: {error.msg}. "
            "Provide the JSON object returned by the fetch service."
        ) from error
    if not isinstance(payload, dict):
        raise MetadataError(
            f"Failed to parse metadata file {metadata_path}: expected a JSON object."
        )
    return CatMetadata.from_api_payload(payload)


def _add_put_command(subparsers: Any) -> None:
    """Register put subcommand."""
    parser = subparsers.add_parser("put", help="Store one fetched image version")
    parser.add_argument("metadata_file", help="Fetch service metadata JSON file")
    parser.add_argument("image_file", help="Raw image bytes file")


def _add_cats_command(subparsers: Any) -> None:
    """Register cats subcommand."""
    subparsers.add_parser("cats", help="List stored cat ids")


def _add_versions_command(subparsers: Any) -> None:
    """Register versions subcommand."""
    parser = subparsers.add_parser("versions", help="List versions of one cat")
    parser.add_argument("--cat-id", required=True, help="Cat id")


def _add_export_command(subparsers: Any) -> None:
    """Register export subcommand."""
    parser = subparsers.add_parser("export", help="Write a stored image to a file")
    parser.add_argument("--cat-id", required=True, help="Cat id")
    parser.add_argument("--version-id", help="Optional specific version id; latest when omitted")
    parser.add_argument("--output", required=True, help="Output image file path")


def _add_stats_command(subparsers: Any) -> None:
    """Register stats subcommand."""
    subparsers.add_parser("stats", help="Print store diagnostics")
