"""Embedded nested-bucket key/value engine.

This module layers buckets-within-buckets on a single SQLite file.
Writes are serialized through one writer connection; readers borrow
read-only connections from a small idle pool and see WAL snapshots.

Tables:
    buckets(id, parent_id, name)      parent_id 0 is the root
    entries(bucket_id, key, value)
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from core.constants import (
    DEFAULT_BUSY_TIMEOUT_SECONDS,
    DEFAULT_SYNCHRONOUS_MODE,
    MAX_IDLE_READERS,
    MAX_KEY_SIZE,
    MAX_VALUE_SIZE,
    ROOT_BUCKET_ID,
    STORE_APPLICATION_ID,
    SUPPORTED_SYNCHRONOUS_MODES,
)
from core.errors import (
    BucketNameRequiredError,
    DatabaseClosedError,
    EngineError,
    IncompatibleValueError,
    KeyRequiredError,
    KeyTooLargeError,
    OpenError,
    TransactionClosedError,
    TransactionNotWritableError,
    ValueTooLargeError,
)
from core.logging_config import get_logger
from core.types import EngineStats

_LOGGER = get_logger(__name__)

_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS buckets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        parent_id INTEGER NOT NULL,
        name BLOB NOT NULL,
        UNIQUE (parent_id, name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entries (
        bucket_id INTEGER NOT NULL REFERENCES buckets (id),
        key BLOB NOT NULL,
        value BLOB NOT NULL,
        PRIMARY KEY (bucket_id, key)
    ) WITHOUT ROWID
    """,
)


class KVEngine:
    """Single-file transactional engine with nested buckets.

    At most one write transaction runs at a time. Read transactions
    run concurrently with the writer and observe the last commit made
    before they started.
    """

    def __init__(
        self,
        path: Path,
        writer: sqlite3.Connection,
        busy_timeout_seconds: float,
    ) -> None:
        self._path = path
        self._writer = writer
        self._busy_timeout_seconds = busy_timeout_seconds
        self._write_lock = threading.Lock()
        self._readers_changed = threading.Condition()
        self._idle_readers: list[sqlite3.Connection] = []
        self._active_readers = 0
        self._closed = False

    @classmethod
    def open(
        cls,
        path: Path,
        busy_timeout_seconds: float = DEFAULT_BUSY_TIMEOUT_SECONDS,
        synchronous: str = DEFAULT_SYNCHRONOUS_MODE,
    ) -> "KVEngine":
        """Open or create an engine file.

        Args:
            path: Database file path; parent directories are created.
            busy_timeout_seconds: Wait time for locks held by other connections.
            synchronous: SQLite synchronous mode.

        Returns:
            Ready engine handle.

        Raises:
            OpenError: If the file cannot be created, is not a store file,
                or schema initialization fails.
        """
        if synchronous not in SUPPORTED_SYNCHRONOUS_MODES:
            raise OpenError(
                f"Unsupported synchronous mode '{synchronous}'. "
                f"Use one of {', '.join(SUPPORTED_SYNCHRONOUS_MODES)}."
            )
        resolved_path = Path(path).expanduser()
        try:
            resolved_path.parent.mkdir(parents=True, exist_ok=True)
            writer = _connect(resolved_path, busy_timeout_seconds)
        except (OSError, sqlite3.Error) as error:
            raise OpenError(
                f"Cannot open store file {resolved_path}: {error}. "
                "Check that the path is writable and not a directory."
            ) from error
        try:
            _initialize_schema(writer, resolved_path)
            writer.execute("PRAGMA journal_mode=WAL").fetchone()
            writer.execute(f"PRAGMA synchronous={synchronous}")
        except sqlite3.Error as error:
            _release_connection(writer, resolved_path)
            raise OpenError(
                f"Cannot initialize store file {resolved_path}: {error}. "
                "The file may be corrupted or not a catvault store."
            ) from error
        except OpenError:
            _release_connection(writer, resolved_path)
            raise
        return cls(resolved_path, writer, busy_timeout_seconds)

    @property
    def path(self) -> Path:
        """Backing database file path."""
        return self._path

    @property
    def closed(self) -> bool:
        """Whether close() has run."""
        return self._closed

    @contextmanager
    def update(self) -> Iterator["Transaction"]:
        """Run a write transaction, committing on success.

        Any exception raised inside the block rolls the transaction back
        and propagates unchanged.

        Yields:
            Writable transaction.

        Raises:
            DatabaseClosedError: If the engine is closed.
            EngineError: If the transaction cannot begin or commit.
        """
        self._ensure_open()
        with self._write_lock:
            self._ensure_open()
            _begin(self._writer, "BEGIN IMMEDIATE")
            tx = Transaction(self._writer, writable=True)
            try:
                yield tx
            except BaseException:
                tx.close()
                _rollback(self._writer, self._path)
                raise
            tx.close()
            try:
                self._writer.execute("COMMIT")
            except sqlite3.Error as error:
                _rollback(self._writer, self._path)
                raise EngineError(f"Commit failed for {self._path}: {error}") from error

    @contextmanager
    def view(self) -> Iterator["Transaction"]:
        """Run a read-only transaction over a consistent snapshot.

        Yields:
            Read-only transaction.

        Raises:
            DatabaseClosedError: If the engine is closed.
            EngineError: If the snapshot cannot be opened.
        """
        connection = self._acquire_reader()
        try:
            _begin(connection, "BEGIN")
            tx = Transaction(connection, writable=False)
            try:
                # pin the snapshot before the caller reads anything
                tx.execute("SELECT 1 FROM buckets LIMIT 1").fetchall()
                yield tx
            finally:
                tx.close()
                _rollback(connection, self._path)
        finally:
            self._release_reader(connection)

    def stats(self) -> EngineStats:
        """Collect page and namespace counters from a read snapshot."""
        with self.view() as tx:
            return EngineStats(
                page_size=_pragma_int(tx, "page_size"),
                page_count=_pragma_int(tx, "page_count"),
                freelist_count=_pragma_int(tx, "freelist_count"),
                bucket_count=int(tx.execute("SELECT count(*) FROM buckets").fetchone()[0]),
                key_count=int(tx.execute("SELECT count(*) FROM entries").fetchone()[0]),
            )

    def close(self) -> None:
        """Checkpoint the WAL and release every connection.

        New transactions are refused at once; close then waits for
        running read transactions to finish. Release failures are
        logged and never raised. Calling close again is a no-op.
        """
        with self._write_lock:
            with self._readers_changed:
                if self._closed:
                    return
                self._closed = True
                while self._active_readers:
                    self._readers_changed.wait()
                readers, self._idle_readers = self._idle_readers, []
            for connection in readers:
                _release_connection(connection, self._path)
            try:
                self._writer.execute("PRAGMA wal_checkpoint(TRUNCATE)").fetchall()
            except sqlite3.Error as error:
                _LOGGER.warning(
                    "engine_release_failed",
                    path=str(self._path),
                    step="wal_checkpoint",
                    error=str(error),
                )
            _release_connection(self._writer, self._path)

    def _acquire_reader(self) -> sqlite3.Connection:
        """Borrow an idle read-only connection or open a new one."""
        with self._readers_changed:
            self._ensure_open()
            self._active_readers += 1
            connection = self._idle_readers.pop() if self._idle_readers else None
        if connection is not None:
            return connection
        try:
            return _open_reader(self._path, self._busy_timeout_seconds)
        except sqlite3.Error as error:
            with self._readers_changed:
                self._active_readers -= 1
                self._readers_changed.notify_all()
            raise EngineError(f"Cannot open reader for {self._path}: {error}") from error

    def _release_reader(self, connection: sqlite3.Connection) -> None:
        """Return a connection to the idle pool, closing any surplus."""
        with self._readers_changed:
            self._active_readers -= 1
            keep = not self._closed and len(self._idle_readers) < MAX_IDLE_READERS
            if keep:
                self._idle_readers.append(connection)
            self._readers_changed.notify_all()
        if not keep:
            _release_connection(connection, self._path)

    def _ensure_open(self) -> None:
        if self._closed:
            raise DatabaseClosedError(
                f"Store {self._path} is closed. Open it again before reading or writing."
            )


class Transaction:
    """Handle for one engine transaction.

    The transaction exposes the root bucket's nested buckets. Values
    cannot be stored at the root.
    """

    def __init__(self, connection: sqlite3.Connection, writable: bool) -> None:
        self._connection = connection
        self._writable = writable
        self._closed = False
        self._root = Bucket(self, ROOT_BUCKET_ID)

    def bucket(self, name: str | bytes) -> "Bucket | None":
        """Return a top-level bucket or None when missing."""
        return self._root.bucket(name)

    def create_bucket_if_not_exists(self, name: str | bytes) -> "Bucket":
        """Return a top-level bucket, creating it when missing."""
        return self._root.create_bucket_if_not_exists(name)

    def bucket_names(self) -> list[bytes]:
        """List top-level bucket names in byte order."""
        return self._root.bucket_names()

    def close(self) -> None:
        self._closed = True

    def execute(self, statement: str, params: tuple[object, ...] = ()) -> sqlite3.Cursor:
        """Execute one statement inside this transaction.

        Raises:
            TransactionClosedError: If the transaction already ended.
            EngineError: If SQLite rejects the statement.
        """
        if self._closed:
            raise TransactionClosedError("Transaction has already been committed or rolled back.")
        try:
            return self._connection.execute(statement, params)
        except sqlite3.Error as error:
            raise EngineError(f"Engine statement failed: {error}") from error

    def require_writable(self) -> None:
        if self._closed:
            raise TransactionClosedError("Transaction has already been committed or rolled back.")
        if not self._writable:
            raise TransactionNotWritableError("Cannot write inside a read-only transaction.")


class Bucket:
    """Named container of key/value pairs and nested buckets.

    A key holds either a value or a nested bucket, never both.
    """

    def __init__(self, tx: Transaction, bucket_id: int) -> None:
        self._tx = tx
        self._id = bucket_id

    def bucket(self, name: str | bytes) -> "Bucket | None":
        """Return a nested bucket or None when missing."""
        key = _encode_key(name, BucketNameRequiredError)
        row = self._tx.execute(
            "SELECT id FROM buckets WHERE parent_id = ? AND name = ?",
            (self._id, key),
        ).fetchone()
        if row is None:
            return None
        return Bucket(self._tx, int(row[0]))

    def create_bucket_if_not_exists(self, name: str | bytes) -> "Bucket":
        """Return a nested bucket, creating it when missing.

        Raises:
            IncompatibleValueError: If the name already holds a value.
        """
        self._tx.require_writable()
        key = _encode_key(name, BucketNameRequiredError)
        existing = self.bucket(key)
        if existing is not None:
            return existing
        if self._has_value(key):
            raise IncompatibleValueError(
                f"Cannot create bucket {key!r}: the key already holds a value."
            )
        cursor = self._tx.execute(
            "INSERT INTO buckets (parent_id, name) VALUES (?, ?)",
            (self._id, key),
        )
        return Bucket(self._tx, int(cursor.lastrowid))

    def get(self, key: str | bytes) -> bytes | None:
        """Return the value stored under key, or None when missing."""
        encoded = _encode_key(key, KeyRequiredError)
        row = self._tx.execute(
            "SELECT value FROM entries WHERE bucket_id = ? AND key = ?",
            (self._id, encoded),
        ).fetchone()
        if row is None:
            return None
        return bytes(row[0])

    def put(self, key: str | bytes, value: bytes) -> None:
        """Store value under key, replacing any previous value.

        Raises:
            IncompatibleValueError: If key names a nested bucket, or this is the root.
            ValueTooLargeError: If value exceeds the engine limit.
        """
        self._tx.require_writable()
        encoded = _encode_key(key, KeyRequiredError)
        if self._id == ROOT_BUCKET_ID:
            raise IncompatibleValueError("The root bucket holds only nested buckets.")
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise EngineError(f"Bucket values must be bytes, got {type(value).__name__}.")
        payload = bytes(value)
        if len(payload) > MAX_VALUE_SIZE:
            raise ValueTooLargeError(
                f"Value for key {encoded!r} is {len(payload)} bytes; limit is {MAX_VALUE_SIZE}."
            )
        if self.bucket(encoded) is not None:
            raise IncompatibleValueError(
                f"Cannot put key {encoded!r}: the key already names a bucket."
            )
        self._tx.execute(
            "INSERT OR REPLACE INTO entries (bucket_id, key, value) VALUES (?, ?, ?)",
            (self._id, encoded, payload),
        )

    def items(self) -> list[tuple[bytes, bytes]]:
        """List stored key/value pairs in key byte order."""
        rows = self._tx.execute(
            "SELECT key, value FROM entries WHERE bucket_id = ? ORDER BY key",
            (self._id,),
        ).fetchall()
        return [(bytes(key), bytes(value)) for key, value in rows]

    def bucket_names(self) -> list[bytes]:
        """List nested bucket names in byte order."""
        rows = self._tx.execute(
            "SELECT name FROM buckets WHERE parent_id = ? ORDER BY name",
            (self._id,),
        ).fetchall()
        return [bytes(row[0]) for row in rows]

    def _has_value(self, key: bytes) -> bool:
        row = self._tx.execute(
            "SELECT 1 FROM entries WHERE bucket_id = ? AND key = ?",
            (self._id, key),
        ).fetchone()
        return row is not None


def _encode_key(name: str | bytes, empty_error: type[EngineError]) -> bytes:
    """Validate and encode a key or bucket name.

    Args:
        name: Text or raw bytes.
        empty_error: Error raised for an empty name.

    Returns:
        Encoded key bytes.
    """
    if isinstance(name, str):
        try:
            encoded = name.encode("utf-8")
        except UnicodeEncodeError as error:
            raise EngineError(f"Key {name!r} is not valid UTF-8 text.") from error
    elif isinstance(name, (bytes, bytearray, memoryview)):
        encoded = bytes(name)
    else:
        raise EngineError(f"Keys must be str or bytes, got {type(name).__name__}.")
    if not encoded:
        raise empty_error("Keys and bucket names must not be empty.")
    if len(encoded) > MAX_KEY_SIZE:
        raise KeyTooLargeError(f"Key is {len(encoded)} bytes; limit is {MAX_KEY_SIZE}.")
    return encoded


def _connect(path: Path, busy_timeout_seconds: float) -> sqlite3.Connection:
    return sqlite3.connect(
        str(path),
        timeout=busy_timeout_seconds,
        isolation_level=None,
        check_same_thread=False,
    )


def _open_reader(path: Path, busy_timeout_seconds: float) -> sqlite3.Connection:
    connection = _connect(path, busy_timeout_seconds)
    try:
        connection.execute("PRAGMA query_only=ON")
    except sqlite3.Error:
        _release_connection(connection, path)
        raise
    return connection



def _initialize_schema(writer: sqlite3.Connection, path: Path) -> None:
    """Claim an empty file for the store or validate an existing one.

    Raises:
        OpenError: If the file belongs to another application.
    """
    writer.execute("BEGIN IMMEDIATE")
    try:
        application_id = int(writer.execute("PRAGMA application_id").fetchone()[0])
        if application_id == 0:
            table_count = int(writer.execute("SELECT count(*) FROM sqlite_master").fetchone()[0])
            if table_count:
                raise OpenError(
                    f"{path} is an SQLite database but not a catvault store. "
                    "Choose a different store path."
                )
            writer.execute(f"PRAGMA application_id={STORE_APPLICATION_ID}")
        elif application_id != STORE_APPLICATION_ID:
            raise OpenError(
                f"{path} belongs to another application (id {application_id:#x}). "
                "Choose a different store path."
            )
        for statement in _SCHEMA_STATEMENTS:
            writer.execute(statement)
        writer.execute("COMMIT")
    except BaseException:
        _rollback(writer, path)
        raise


def _begin(connection: sqlite3.Connection, statement: str) -> None:
    try:
        connection.execute(statement)
    except sqlite3.Error as error:
        raise EngineError(f"Cannot begin transaction: {error}") from error


def _rollback(connection: sqlite3.Connection, path: Path) -> None:
    """Roll back an open transaction; failures are logged."""
    try:
        if connection.in_transaction:
            connection.execute("ROLLBACK")
    except sqlite3.Error as error:
        _LOGGER.warning(
            "engine_release_failed",
            path=str(path),
            step="rollback",
            error=str(error),
        )


def _release_connection(connection: sqlite3.Connection, path: Path) -> None:
    """Close a connection; failures are logged."""
    try:
        connection.close()
    except sqlite3.Error as error:
        _LOGGER.warning(
            "engine_release_failed",
            path=str(path),
            step="close_connection",
            error=str(error),
        )


def _pragma_int(tx: Transaction, name: str) -> int:
    return int(tx.execute(f"PRAGMA {name}").fetchone()[0])
