"""Version id derivation.

A version id is the FNV-1a 64-bit fingerprint of a source URL, rendered
as fixed-width lowercase hex. It carries no seed, so the same URL always
maps to the same version slot across processes.
"""

from __future__ import annotations

from core.constants import FNV64_OFFSET_BASIS, FNV64_PRIME, VERSION_ID_HEX_WIDTH
from core.errors import HashError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)
_UINT64_MASK = 0xFFFFFFFFFFFFFFFF


def derive_version_id(locator: str) -> str:
    """Derive the version id for a source locator.

    Args:
        locator: Source URL or identifier string.

    Returns:
        Sixteen-character lowercase hex fingerprint.

    Raises:
        HashError: If the locator cannot be encoded for hashing.
    """
    if not isinstance(locator, str):
        _LOGGER.error("version_hash_failed", reason="locator_not_str")
        raise HashError(
            f"Cannot derive version id from {type(locator).__name__}: expected a URL string."
        )
    try:
        encoded = locator.encode("utf-8")
    except UnicodeEncodeError as error:
        _LOGGER.error("version_hash_failed", reason="utf8_encode", detail=str(error))
        raise HashError(
            f"Cannot derive version id: locator is not valid UTF-8 text ({error.reason})."
        ) from error
    return format(fnv1a_64(encoded), f"0{VERSION_ID_HEX_WIDTH}x")


def fnv1a_64(data: bytes) -> int:
    """Compute the 64-bit FNV-1a hash of raw bytes."""
    value = FNV64_OFFSET_BASIS
    for byte in data:
        value ^= byte
        value = (value * FNV64_PRIME) & _UINT64_MASK
    return value
