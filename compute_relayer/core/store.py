"""Persistence for the relay cursor and retry set.

``SequenceStore`` owns two well-known keys in a byte-oriented key-value store:

    relay/cursor      JSON integer, next sequence number for the forward sweep
    relay/retry_set   JSON sorted list of sequence numbers deferred for retry

Every ``put`` is committed in its own transaction, so a failed write leaves the
previous value in place.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Protocol, Set, Union

from compute_relayer.core.errors import StoreError
from compute_relayer.core.utils import get_logger, is_u64

LOGGER = get_logger("compute_relayer.store")

CURSOR_KEY = b"relay/cursor"
RETRY_SET_KEY = b"relay/retry_set"

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS kv (
    key BLOB PRIMARY KEY,
    value BLOB NOT NULL
);
"""


class KeyValueStore(Protocol):
    """Minimal byte-string key-value contract."""

    def get(self, key: bytes) -> Optional[bytes]:
        ...

    def put(self, key: bytes, value: bytes) -> None:
        ...


class MemoryKeyValueStore:
    """Dictionary-backed store for tests and dry runs."""

    def __init__(self, initial: Optional[Dict[bytes, bytes]] = None) -> None:
        self._data: Dict[bytes, bytes] = dict(initial or {})

    def get(self, key: bytes) -> Optional[bytes]:
        return self._data.get(key)

    def put(self, key: bytes, value: bytes) -> None:
        self._data[bytes(key)] = bytes(value)


class SqliteKeyValueStore:
    """Single-table SQLite key-value store.

    Args:
        path: Database file, or ":memory:" for an in-memory store.
    """

    def __init__(self, path: Union[str, Path] = ":memory:") -> None:
        self._path = str(path)
        self._is_memory = self._path == ":memory:"
        try:
            if self._is_memory:
                self._persistent_conn: Optional[sqlite3.Connection] = sqlite3.connect(
                    ":memory:", check_same_thread=False
                )
            else:
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
                self._persistent_conn = None
            with self._transaction() as conn:
                conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            raise StoreError(f"Failed to open store at {self._path}: {exc}") from exc
        LOGGER.debug("Opened key-value store at %s", self._path)

    @property
    def path(self) -> str:
        return self._path

    def _get_conn(self) -> sqlite3.Connection:
        if self._persistent_conn is not None:
            return self._persistent_conn
        conn = sqlite3.connect(self._path)
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if self._persistent_conn is None:
                conn.close()

    def get(self, key: bytes) -> Optional[bytes]:
        try:
            with self._transaction() as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (bytes(key),)).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read key {key!r}: {exc}") from exc
        return bytes(row[0]) if row is not None else None

    def put(self, key: bytes, value: bytes) -> None:
        try:
            with self._transaction() as conn:
                conn.execute(
                    "INSERT INTO kv (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (bytes(key), bytes(value)),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to write key {key!r}: {exc}") from exc

    def close(self) -> None:
        if self._persistent_conn is not None:
            self._persistent_conn.close()
            self._persistent_conn = None


class SequenceStore:
    """Cursor and retry-set persistence on top of a ``KeyValueStore``."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    def load_cursor(self) -> int:
        raw = self._kv.get(CURSOR_KEY)
        if raw is None:
            return 0
        value = _decode_json(raw, CURSOR_KEY)
        if not is_u64(value):
            raise StoreError(f"Stored cursor is not an unsigned 64-bit integer: {value!r}")
        return value

    def store_cursor(self, seq_number: int) -> None:
        if not is_u64(seq_number):
            raise StoreError(f"Cursor must be an unsigned 64-bit integer, got {seq_number!r}")
        self._kv.put(CURSOR_KEY, json.dumps(seq_number).encode("utf-8"))

    def load_retry_set(self) -> Set[int]:
        raw = self._kv.get(RETRY_SET_KEY)
        if raw is None:
            return set()
        values = _decode_json(raw, RETRY_SET_KEY)
        if not isinstance(values, list) or not all(is_u64(v) for v in values):
            raise StoreError(f"Stored retry set is malformed: {values!r}")
        return set(values)

    def store_retry_set(self, seq_numbers: Iterable[int]) -> None:
        values = sorted(set(seq_numbers))
        bad = [v for v in values if not is_u64(v)]
        if bad:
            raise StoreError(f"Retry set contains invalid sequence numbers: {bad!r}")
        self._kv.put(RETRY_SET_KEY, json.dumps(values).encode("utf-8"))


def _decode_json(raw: bytes, key: bytes):
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StoreError(f"Stored value for {key!r} is not valid JSON") from exc


__all__ = [
    "CURSOR_KEY",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "RETRY_SET_KEY",
    "SequenceStore",
    "SqliteKeyValueStore",
]
