"""Runtime configuration model for catvault.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import (
    DEFAULT_BUSY_TIMEOUT_SECONDS,
    DEFAULT_DB_PATH,
    DEFAULT_SYNCHRONOUS_MODE,
    SUPPORTED_SYNCHRONOUS_MODES,
)
from core.errors import CatVaultConfigError


@dataclass(frozen=True)
class CatVaultConfig:
    """Validated runtime configuration.

    Attributes:
        db_path: Store database file path.
        busy_timeout_seconds: How long a writer waits for the engine lock.
        synchronous: SQLite synchronous mode used for durability.
    """

    db_path: Path
    busy_timeout_seconds: float
    synchronous: str

    @classmethod
    def from_env(cls) -> "CatVaultConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            CatVaultConfigError: If environment values are invalid.
        """
        db_path_value = os.getenv("CATVAULT_DB_PATH", str(DEFAULT_DB_PATH))
        busy_timeout_value = os.getenv(
            "CATVAULT_BUSY_TIMEOUT", str(DEFAULT_BUSY_TIMEOUT_SECONDS)
        )
        synchronous_value = os.getenv("CATVAULT_SYNCHRONOUS", DEFAULT_SYNCHRONOUS_MODE)
        return cls(
            db_path=Path(db_path_value).expanduser().resolve(),
            busy_timeout_seconds=_parse_busy_timeout(busy_timeout_value),
            synchronous=_parse_synchronous(synchronous_value),
        )


def _parse_busy_timeout(raw_value: str) -> float:
    """Parse the busy timeout environment value.

    Args:
        raw_value: Raw string from environment.

    Returns:
        Parsed non-negative timeout in seconds.

    Raises:
        CatVaultConfigError: If value is not a non-negative number.
    """
    try:
        timeout = float(raw_value)
    except ValueError as error:
        raise CatVaultConfigError(
            "Invalid CATVAULT_BUSY_TIMEOUT value: "
            f"expected number of seconds, got '{raw_value}'. "
            "Set CATVAULT_BUSY_TIMEOUT to a numeric value."
        ) from error
    if timeout < 0:
        raise CatVaultConfigError(
            f"Invalid CATVAULT_BUSY_TIMEOUT value: {timeout} is negative. "
            "Use 0 or a positive number of seconds."
        )
    return timeout


def _parse_synchronous(raw_value: str) -> str:
    """Parse the SQLite synchronous mode environment value."""
    mode = raw_value.strip().upper()
    if mode not in SUPPORTED_SYNCHRONOUS_MODES:
        raise CatVaultConfigError(
            f"Invalid CATVAULT_SYNCHRONOUS value: '{raw_value}'. "
            f"Use one of {', '.join(SUPPORTED_SYNCHRONOUS_MODES)}."
        )
    return mode
