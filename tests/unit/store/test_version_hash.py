"""Unit tests for version id derivation."""

from __future__ import annotations

import pytest

from core.errors import HashError
from store.version_hash import derive_version_id, fnv1a_64


def test_fnv1a_64_matches_reference_vectors() -> None:
    """The fingerprint should match published FNV-1a 64-bit vectors."""
    assert (fnv1a_64(b""), fnv1a_64(b"a"), fnv1a_64(b"foobar")) == (
        0xCBF29CE484222325,
        0xAF63DC4C8601EC8C,
        0x85944171F73967E8,
    )


def test_derive_version_id_is_fixed_width_hex() -> None:
    """Version ids should be sixteen lowercase hex digits."""
    version_id = derive_version_id("https://x/1.png")

    assert len(version_id) == 16 and version_id == version_id.lower()
    assert int(version_id, 16) == fnv1a_64(b"https://x/1.png")


def test_derive_version_id_is_deterministic() -> None:
    """Deriving twice from one URL should give the same id."""
    url = "https://cataas.com/cat/aB3dE5fG7hJ9kL1m?position=center"

    assert derive_version_id(url) == derive_version_id(url)


def test_derive_version_id_has_no_collisions_across_ten_thousand_urls() -> None:
    """Distinct URLs should map to distinct version ids."""
    urls = [f"https://cataas.com/cat/{index:05d}?position=center" for index in range(10_000)]

    version_ids = {derive_version_id(url) for url in urls}

    assert len(version_ids) == len(urls)


def test_derive_version_id_rejects_unencodable_locator() -> None:
    """Locators that cannot be encoded should raise HashError."""
    with pytest.raises(HashError):
        derive_version_id("https://x/\ud800.png")


def test_derive_version_id_rejects_non_string_locator() -> None:
    """Non-string locators should raise HashError."""
    with pytest.raises(HashError):
        derive_version_id(b"https://x/1.png")  # type: ignore[arg-type]
