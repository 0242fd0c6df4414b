"""Shared fixture path helpers for tests."""

from __future__ import annotations

from pathlib import Path

FIXTURES_ROOT = Path(__file__).resolve().parent / "fixtures"


def fixture_path(relative_path: str) -> Path:
    """Resolve a fixture path such as ``api/cat_metadata.json``.

    Args:
        relative_path: Path under the fixtures root.

    Returns:
        Absolute fixture path.
    """
    return FIXTURES_ROOT / relative_path
