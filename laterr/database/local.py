"""The local database: engine + schema + persistence wired together."""

import logging
import sqlite3
from typing import Callable, Optional, TypeVar

from ..errors import PersistenceError, classify_engine_error
from ..hoststore import ByteStore
from .engine import Engine
from .persistence import PersistenceBridge
from .schema import ensure_schema

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalDatabase:
    """Explicitly owned database handle.

    Startup order: the persistence bridge rehydrates the image, then the schema
    manager runs (a no-op when the image already has tables).

    All statements go through ``read`` or ``mutate``, which hold the engine lock.
    ``mutate`` also flushes the image; if the flush fails the engine is put
    back to the last image that reached the store, so the caller sees neither a
    success nor a half-applied change.
    """

    def __init__(self, store: ByteStore, key: Optional[str] = None):
        self.engine = Engine()
        self.bridge = PersistenceBridge(store, key) if key else PersistenceBridge(store)

    def open(self) -> None:
        """Load or create the image. Idempotent; schema failures are fatal."""
        with self.engine.lock:
            if self.engine.is_open:
                return
            image = self.bridge.load()
            try:
                self.engine.open(image)
                created = ensure_schema(self.engine.conn)
                if created:
                    self.bridge.save(self.engine)
            except Exception:
                # Leave the handle closed so the next call retries startup
                self.engine.close()
                raise
            if created:
                logger.info("Initialized new local database")
            else:
                logger.info("Rehydrated local database from store")

    def read(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run a read-only callable against the engine."""
        self.open()
        with self.engine.lock:
            try:
                return fn(self.engine.conn)
            except sqlite3.Error as e:
                raise classify_engine_error(e) from e

    def mutate(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``fn`` in a transaction, then flush the image.

        Raises:
            PersistenceError: The flush failed; the in-memory change was undone.
            LaterrError: The statement failed; nothing was changed.
        """
        self.open()
        with self.engine.lock:
            try:
                with self.engine.transaction() as conn:
                    result = fn(conn)
            except sqlite3.Error as e:
                raise classify_engine_error(e) from e
            try:
                self.bridge.save(self.engine)
            except PersistenceError:
                self._rollback_to_saved()
                raise
            return result

    def _rollback_to_saved(self) -> None:
        if self.bridge.last_saved is not None:
            logger.error("Flush failed; restoring last persisted image")
            self.engine.restore(self.bridge.last_saved)
        else:
            logger.error("Flush failed and no persisted image exists to restore")

    def export_image(self) -> bytes:
        self.open()
        return self.engine.export()

    def import_image(self, image: bytes) -> None:
        """Replace the database with ``image`` and persist it."""
        self.open()
        with self.engine.lock:
            previous = self.engine.export()
            try:
                self.engine.restore(image)
                ensure_schema(self.engine.conn)
                self.bridge.save(self.engine)
            except Exception:
                self.engine.restore(previous)
                raise

    def reset(self) -> None:
        """Drop the stored image and start over with an empty schema."""
        with self.engine.lock:
            self.engine.close()
            self.bridge.clear()
            self.open()

    def close(self) -> None:
        self.engine.close()
