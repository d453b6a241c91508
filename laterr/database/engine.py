"""In-process SQLite engine handle.

One in-memory connection per handle. The handle's ``lock`` is the single-writer
discipline for the whole layer: callers hold it across "execute statement +
flush image" so two operations never interleave.
"""

import contextlib
import logging
import sqlite3
import threading
from typing import Iterator, Optional

from ..errors import PersistenceError

logger = logging.getLogger(__name__)


class Engine:
    """Owned handle to an in-memory SQLite database image."""

    def __init__(self):
        self.lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Engine is not open")
        return self._conn

    def open(self, image: Optional[bytes] = None) -> None:
        """Open a fresh in-memory database, optionally rehydrated from ``image``."""
        with self.lock:
            self.close()
            # Worker threads run statements (see QueryBuilder.__await__); the lock serializes them
            conn = sqlite3.connect(":memory:", check_same_thread=False)
            conn.row_factory = sqlite3.Row
            self._conn = conn
            if image is not None:
                self.restore(image)
            else:
                self._configure()

    def _configure(self) -> None:
        self.conn.execute("PRAGMA foreign_keys = ON")

    def export(self) -> bytes:
        """Serialize the full database image."""
        with self.lock:
            return self.conn.serialize()

    def restore(self, image: bytes) -> None:
        """Replace the current image with ``image``."""
        with self.lock:
            try:
                self.conn.deserialize(image)
                self.conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
            except sqlite3.Error as e:
                raise PersistenceError(f"Stored database image is unreadable: {e}") from e
            self._configure()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock and run one transaction.

        Commits on success, rolls back on exception.
        """
        with self.lock:
            conn = self.conn
            try:
                yield conn
                conn.commit()
            except Exception as e:
                logger.debug(f"Transaction failed, rolling back: {e}")
                conn.rollback()
                raise

    def close(self) -> None:
        with self.lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
