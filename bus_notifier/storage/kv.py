"""Transactional key-value store over SQLite.

Values live in named buckets keyed by byte strings. Every read and write
happens inside a ``transaction()``; a transaction spanning several buckets
commits or rolls back as a whole.

Any ``sqlite3.Error`` (cannot open, locked, corrupted, commit failed) is
raised to the caller as ``StorageFault``.
"""
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

from ..errors import StorageFault

logger = logger.bind(module="storage.kv")

# ============== SQL Schema ==============

_INIT_SQL = """
CREATE TABLE IF NOT EXISTS kv (
    bucket TEXT NOT NULL,
    key    BLOB NOT NULL,
    value  BLOB NOT NULL,
    PRIMARY KEY (bucket, key)
);
"""


class Transaction:
    """Bucket operations bound to one open SQLite transaction."""

    def __init__(self, db: sqlite3.Connection):
        self._db = db

    def get(self, bucket: str, key: bytes) -> bytes | None:
        row = self._db.execute(
            "SELECT value FROM kv WHERE bucket = ? AND key = ?", (bucket, key)
        ).fetchone()
        return bytes(row[0]) if row else None

    def put(self, bucket: str, key: bytes, value: bytes) -> None:
        self._db.execute(
            """INSERT INTO kv (bucket, key, value) VALUES (?, ?, ?)
               ON CONFLICT(bucket, key) DO UPDATE SET value = excluded.value""",
            (bucket, key, value),
        )

    def delete(self, bucket: str, key: bytes) -> None:
        self._db.execute("DELETE FROM kv WHERE bucket = ? AND key = ?", (bucket, key))

    def items(self, bucket: str) -> list[tuple[bytes, bytes]]:
        rows = self._db.execute(
            "SELECT key, value FROM kv WHERE bucket = ? ORDER BY key", (bucket,)
        ).fetchall()
        return [(bytes(k), bytes(v)) for k, v in rows]

    def clear(self, bucket: str) -> None:
        self._db.execute("DELETE FROM kv WHERE bucket = ?", (bucket,))


class KVStore:
    """Durable bucketed key-value store backed by a single SQLite file.

    Thread-safety: one connection shared behind a lock, so transactions
    from different threads are serialized.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self._db: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    # ============== Lifecycle ==============

    def open(self) -> None:
        """Open the database file, creating it and its schema if needed."""
        if self._db is not None:
            return
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            db = sqlite3.connect(
                str(self.db_path), check_same_thread=False, isolation_level=None
            )
            db.execute("PRAGMA journal_mode=WAL")
            db.execute("PRAGMA synchronous=NORMAL")
            db.executescript(_INIT_SQL)
        except (sqlite3.Error, OSError) as e:
            raise StorageFault(f"Cannot open store {self.db_path}: {e}") from e
        self._db = db
        logger.debug(f"Opened store {self.db_path}")

    def close(self) -> None:
        if self._db:
            self._db.close()
            self._db = None

    # ============== Transactions ==============

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run the enclosed block in one write transaction.

        Commits on normal exit, rolls back if the block raises.
        """
        self.open()
        assert self._db is not None
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageFault(f"Cannot begin transaction on {self.db_path}: {e}") from e
            try:
                yield Transaction(self._db)
            except sqlite3.Error as e:
                self._rollback()
                raise StorageFault(f"Store operation failed on {self.db_path}: {e}") from e
            except BaseException:
                self._rollback()
                raise
            try:
                self._db.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback()
                raise StorageFault(f"Cannot commit to {self.db_path}: {e}") from e

    def _rollback(self) -> None:
        assert self._db is not None
        try:
            self._db.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.error(f"Rollback failed on {self.db_path}: {e}")
