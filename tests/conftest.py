"""Pytest configuration for repository test runs."""

from __future__ import annotations

import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest


def pytest_sessionstart() -> None:
    """Add src directory to sys.path for test imports."""
    project_root = Path(__file__).resolve().parent.parent
    src_path = project_root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


@pytest.fixture
def store_config(tmp_path):
    """Config pointing at a fresh store file under tmp_path."""
    from core.config import CatVaultConfig

    return replace(CatVaultConfig.from_env(), db_path=tmp_path / "cats.db")


@pytest.fixture
def sample_metadata():
    """Metadata for one fetched cat image."""
    from core.types import CatMetadata

    return CatMetadata(
        cat_id="c1",
        tags=("a", "b"),
        created_at=datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc),
        url="https://x/1.png",
        mime_type="image/png",
    )
