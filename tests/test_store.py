"""
Tests for SequenceStore and the key-value backends.

Covers:
- Defaults on first run (cursor 0, empty retry set)
- Durability across SqliteKeyValueStore instances on the same file
- Retry set is a set (duplicates collapse, sorted serialization)
- Validation of unsigned 64-bit values
- Corrupt stored values surface as StoreError
"""

import json
from pathlib import Path

import pytest

from compute_relayer.core.errors import StoreError
from compute_relayer.core.store import (
    CURSOR_KEY,
    RETRY_SET_KEY,
    MemoryKeyValueStore,
    SequenceStore,
    SqliteKeyValueStore,
)
from compute_relayer.core.utils import U64_MAX


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    return tmp_path / "db" / "relayer.sqlite3"


class TestDefaults:
    def test_cursor_defaults_to_zero(self, store: SequenceStore) -> None:
        assert store.load_cursor() == 0

    def test_retry_set_defaults_to_empty(self, store: SequenceStore) -> None:
        assert store.load_retry_set() == set()


class TestRoundTrip:
    def test_cursor_survives_reopen(self, sqlite_path: Path) -> None:
        SequenceStore(SqliteKeyValueStore(sqlite_path)).store_cursor(1234)

        assert SequenceStore(SqliteKeyValueStore(sqlite_path)).load_cursor() == 1234

    def test_retry_set_survives_reopen(self, sqlite_path: Path) -> None:
        SequenceStore(SqliteKeyValueStore(sqlite_path)).store_retry_set({9, 3, 5})

        assert SequenceStore(SqliteKeyValueStore(sqlite_path)).load_retry_set() == {3, 5, 9}

    def test_last_write_wins(self, sqlite_path: Path) -> None:
        store = SequenceStore(SqliteKeyValueStore(sqlite_path))
        store.store_cursor(1)
        store.store_cursor(2)

        assert store.load_cursor() == 2

    def test_retry_set_serialized_sorted_without_duplicates(self) -> None:
        kv = MemoryKeyValueStore()
        SequenceStore(kv).store_retry_set([7, 2, 7, 2, 11])

        assert json.loads(kv.get(RETRY_SET_KEY)) == [2, 7, 11]

    def test_max_u64_cursor_accepted(self, store: SequenceStore) -> None:
        store.store_cursor(U64_MAX)

        assert store.load_cursor() == U64_MAX

    def test_in_memory_sqlite_store(self) -> None:
        kv = SqliteKeyValueStore(":memory:")
        kv.put(b"k", b"v")

        assert kv.get(b"k") == b"v"
        assert kv.get(b"missing") is None


class TestValidation:
    @pytest.mark.parametrize("value", [-1, U64_MAX + 1, True, 1.5])
    def test_invalid_cursor_rejected(self, store: SequenceStore, value) -> None:
        with pytest.raises(StoreError):
            store.store_cursor(value)

    def test_invalid_retry_member_rejected(self, store: SequenceStore) -> None:
        with pytest.raises(StoreError):
            store.store_retry_set({1, -2})

    def test_failed_write_keeps_previous_value(self, store: SequenceStore) -> None:
        store.store_cursor(10)
        with pytest.raises(StoreError):
            store.store_cursor(-1)

        assert store.load_cursor() == 10


class TestCorruption:
    def test_non_json_cursor(self) -> None:
        store = SequenceStore(MemoryKeyValueStore({CURSOR_KEY: b"\xff\xfe"}))

        with pytest.raises(StoreError):
            store.load_cursor()

    def test_negative_cursor(self) -> None:
        store = SequenceStore(MemoryKeyValueStore({CURSOR_KEY: b"-5"}))

        with pytest.raises(StoreError):
            store.load_cursor()

    def test_retry_set_not_a_list(self) -> None:
        store = SequenceStore(MemoryKeyValueStore({RETRY_SET_KEY: b'{"a": 1}'}))

        with pytest.raises(StoreError):
            store.load_retry_set()


def test_unopenable_path_raises_store_error(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")

    with pytest.raises(StoreError):
        SqliteKeyValueStore(blocker / "relayer.sqlite3")
