"""Unit tests for the nested-bucket engine."""

from __future__ import annotations

import sqlite3
import threading

import pytest

from core.errors import (
    BucketNameRequiredError,
    DatabaseClosedError,
    IncompatibleValueError,
    KeyRequiredError,
    KeyTooLargeError,
    OpenError,
    TransactionClosedError,
    TransactionNotWritableError,
)
from core.constants import MAX_IDLE_READERS, MAX_KEY_SIZE
from store import kv_engine as kv_engine_module
from store.kv_engine import KVEngine


@pytest.fixture
def engine(tmp_path):
    kv_engine = KVEngine.open(tmp_path / "engine.db")
    yield kv_engine
    kv_engine.close()


def test_put_is_visible_to_later_view(engine) -> None:
    """Committed values should be readable from a new snapshot."""
    with engine.update() as tx:
        tx.create_bucket_if_not_exists("outer").create_bucket_if_not_exists("inner").put(
            "k", b"\x00\x01binary"
        )

    with engine.view() as tx:
        value = tx.bucket("outer").bucket("inner").get("k")

    assert value == b"\x00\x01binary"


def test_create_bucket_if_not_exists_is_idempotent(engine) -> None:
    """Repeated creation should return the existing bucket."""
    with engine.update() as tx:
        first = tx.create_bucket_if_not_exists("outer").create_bucket_if_not_exists("inner")
        first.put("k", b"v")
        second = tx.create_bucket_if_not_exists("outer").create_bucket_if_not_exists("inner")
        value = second.get("k")

    assert value == b"v" and engine.stats().bucket_count == 2


def test_exception_inside_update_rolls_back(engine) -> None:
    """Errors raised inside update should leave no trace."""
    with pytest.raises(RuntimeError):
        with engine.update() as tx:
            tx.create_bucket_if_not_exists("outer").put("k", b"v")
            raise RuntimeError("boom")

    with engine.view() as tx:
        assert tx.bucket("outer") is None


def test_view_rejects_writes(engine) -> None:
    """Read transactions should refuse writes."""
    with engine.update() as tx:
        tx.create_bucket_if_not_exists("outer")

    with engine.view() as tx:
        with pytest.raises(TransactionNotWritableError):
            tx.bucket("outer").put("k", b"v")


def test_empty_names_are_rejected(engine) -> None:
    """Empty bucket names and keys should be rejected."""
    with engine.update() as tx:
        outer = tx.create_bucket_if_not_exists("outer")
        with pytest.raises(BucketNameRequiredError):
            outer.create_bucket_if_not_exists("")
        with pytest.raises(KeyRequiredError):
            outer.put(b"", b"v")


def test_oversized_key_is_rejected(engine) -> None:
    """Keys above the engine limit should be rejected."""
    with engine.update() as tx:
        outer = tx.create_bucket_if_not_exists("outer")
        with pytest.raises(KeyTooLargeError):
            outer.put(b"k" * (MAX_KEY_SIZE + 1), b"v")


def test_key_cannot_be_value_and_bucket(engine) -> None:
    """A key holding a value cannot become a bucket and vice versa."""
    with engine.update() as tx:
        outer = tx.create_bucket_if_not_exists("outer")
        outer.put("value-key", b"v")
        outer.create_bucket_if_not_exists("bucket-key")
        with pytest.raises(IncompatibleValueError):
            outer.create_bucket_if_not_exists("value-key")
        with pytest.raises(IncompatibleValueError):
            outer.put("bucket-key", b"v")


def test_bucket_is_unusable_after_transaction_ends(engine) -> None:
    """Buckets must not be used outside their transaction."""
    with engine.update() as tx:
        outer = tx.create_bucket_if_not_exists("outer")

    with pytest.raises(TransactionClosedError):
        outer.put("k", b"v")


def test_listing_is_ordered_by_key_bytes(engine) -> None:
    """Bucket names and items should come back in byte order."""
    with engine.update() as tx:
        outer = tx.create_bucket_if_not_exists("outer")
        for name in ("b", "a", "c"):
            outer.create_bucket_if_not_exists(name)
            outer.create_bucket_if_not_exists(name).put(name, name.encode("utf-8"))

    with engine.view() as tx:
        names = tx.bucket("outer").bucket_names()
        items = tx.bucket("outer").bucket("c").items()

    assert names == [b"a", b"b", b"c"] and items == [(b"c", b"c")]


def test_view_keeps_snapshot_during_concurrent_write(engine) -> None:
    """Readers should not observe commits made after their snapshot began."""

    def write_outer() -> None:
        with engine.update() as tx:
            tx.create_bucket_if_not_exists("outer")

    with engine.view() as tx:
        writer = threading.Thread(target=write_outer)
        writer.start()
        writer.join()
        seen_inside_snapshot = tx.bucket("outer")

    with engine.view() as tx:
        seen_after_snapshot = tx.bucket("outer")

    assert seen_inside_snapshot is None and seen_after_snapshot is not None


def test_short_lived_reader_threads_reuse_pooled_connections(engine, monkeypatch) -> None:
    """Readers from exited threads should not accumulate open connections."""
    opened: list[sqlite3.Connection] = []
    original_open_reader = kv_engine_module._open_reader

    def counting_open_reader(*args):
        connection = original_open_reader(*args)
        opened.append(connection)
        return connection

    def read_once() -> None:
        with engine.view() as tx:
            tx.bucket_names()

    monkeypatch.setattr(kv_engine_module, "_open_reader", counting_open_reader)
    for _ in range(50):
        reader = threading.Thread(target=read_once)
        reader.start()
        reader.join()

    assert len(opened) <= MAX_IDLE_READERS
    assert len(engine._idle_readers) <= MAX_IDLE_READERS


def test_nested_views_on_one_thread_are_supported(engine) -> None:
    """A view opened inside another view should get its own snapshot."""
    with engine.update() as tx:
        tx.create_bucket_if_not_exists("outer")

    with engine.view() as outer_tx:
        with engine.view() as inner_tx:
            inner_names = inner_tx.bucket_names()
        outer_names = outer_tx.bucket_names()

    assert inner_names == outer_names == [b"outer"]


def test_close_waits_for_running_view(engine) -> None:
    """Close should let an open view finish cleanly before releasing it."""
    with engine.update() as tx:
        tx.create_bucket_if_not_exists("outer")
    entered = threading.Event()
    release = threading.Event()
    outcome: dict[str, object] = {}

    def hold_view() -> None:
        try:
            with engine.view() as tx:
                entered.set()
                release.wait(timeout=10)
                outcome["names"] = tx.bucket_names()
        except Exception as error:
            outcome["error"] = error

    reader = threading.Thread(target=hold_view)
    reader.start()
    assert entered.wait(timeout=10)
    closer = threading.Thread(target=engine.close)
    closer.start()
    closer.join(timeout=0.2)
    close_was_waiting = closer.is_alive()

    with pytest.raises(DatabaseClosedError):
        with engine.view():
            pass
    release.set()
    reader.join(timeout=10)
    closer.join(timeout=10)

    assert close_was_waiting and engine.closed and not closer.is_alive()
    assert outcome == {"names": [b"outer"]}


def test_rollback_on_closed_connection_is_logged_not_raised(tmp_path) -> None:
    """Rolling back a released connection should not raise sqlite errors."""
    connection = sqlite3.connect(str(tmp_path / "closed.db"))
    connection.close()

    kv_engine_module._rollback(connection, tmp_path / "closed.db")


def test_open_rejects_non_database_file(tmp_path) -> None:
    """Opening a file that is not SQLite should raise OpenError."""
    bogus_path = tmp_path / "bogus.db"
    bogus_path.write_bytes(b"this is not a database file" * 100)

    with pytest.raises(OpenError):
        KVEngine.open(bogus_path)


def test_open_rejects_foreign_sqlite_database(tmp_path) -> None:
    """Opening another application's SQLite file should raise OpenError."""
    foreign_path = tmp_path / "foreign.db"
    connection = sqlite3.connect(foreign_path)
    connection.execute("CREATE TABLE photos (id INTEGER PRIMARY KEY)")
    connection.commit()
    connection.close()

    with pytest.raises(OpenError):
        KVEngine.open(foreign_path)


def test_open_rejects_directory_path(tmp_path) -> None:
    """Opening a directory as a store file should raise OpenError."""
    with pytest.raises(OpenError):
        KVEngine.open(tmp_path)


def test_reopen_keeps_committed_data(tmp_path) -> None:
    """Data should survive close and reopen."""
    db_path = tmp_path / "engine.db"
    first = KVEngine.open(db_path)
    with first.update() as tx:
        tx.create_bucket_if_not_exists("outer").put("k", b"v")
    first.close()

    second = KVEngine.open(db_path)
    with second.view() as tx:
        value = tx.bucket("outer").get("k")
    second.close()

    assert value == b"v"


def test_use_after_close_raises(engine) -> None:
    """Closed engines should refuse transactions; close is repeatable."""
    engine.close()
    engine.close()

    with pytest.raises(DatabaseClosedError):
        with engine.update():
            pass
