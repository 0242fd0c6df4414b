"""Core constants used across catvault modules.

This module centralizes bucket names, metadata keys, and engine limits.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DB_PATH = Path(".catvault") / "cats.db"
DEFAULT_BUSY_TIMEOUT_SECONDS = 5.0
DEFAULT_SYNCHRONOUS_MODE = "FULL"
SUPPORTED_SYNCHRONOUS_MODES = ("OFF", "NORMAL", "FULL", "EXTRA")

BUCKET_CATS = "cats"
BUCKET_METADATA = "metadata"
BUCKET_DATA = "data"
KEY_IMG_DATA = "img_data"
KEY_META_ID = "cat_id"
KEY_META_TAGS = "tags"
KEY_META_CREATED_AT = "created_at"
KEY_META_URL = "url"
KEY_META_MIME_TYPE = "mime_type"
METADATA_KEYS = (
    KEY_META_ID,
    KEY_META_TAGS,
    KEY_META_CREATED_AT,
    KEY_META_URL,
    KEY_META_MIME_TYPE,
)
TAG_SEPARATOR = ", "

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
VERSION_ID_HEX_WIDTH = 16

# 'CATV' as a big-endian int, stored in PRAGMA application_id.
STORE_APPLICATION_ID = 0x43415456
ROOT_BUCKET_ID = 0
MAX_KEY_SIZE = 32768
MAX_VALUE_SIZE = (1 << 31) - 2
MAX_IDLE_READERS = 4
