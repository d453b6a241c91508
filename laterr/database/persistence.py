"""Persistence bridge: the in-memory image <-> the host byte store.

Every mutation is followed by a full-image flush under one fixed key. There is
no batching and no write-ahead log; two flushes from separate processes are
last-writer-wins on the whole image.
"""

import logging
from typing import Optional

from ..errors import PersistenceError
from ..hoststore import ByteStore
from .engine import Engine

logger = logging.getLogger(__name__)

DB_KEY = "laterr_db"


class PersistenceBridge:
    """Loads and saves the database image under ``key``.

    The bridge remembers the last image it wrote successfully so a failed
    flush can be undone in memory (see ``LocalDatabase.mutate``).
    """

    def __init__(self, store: ByteStore, key: str = DB_KEY):
        self.store = store
        self.key = key
        self.last_saved: Optional[bytes] = None

    def load(self) -> Optional[bytes]:
        """Return the saved image, or None on first run."""
        try:
            image = self.store.get(self.key)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Could not read database image: {e}") from e
        if image is not None:
            self.last_saved = image
            logger.debug(f"Loaded database image ({len(image)} bytes)")
        return image

    def save(self, engine: Engine) -> None:
        """Serialize ``engine`` and overwrite the stored image.

        Raises:
            PersistenceError: The host store rejected the write.
        """
        image = engine.export()
        try:
            self.store.put(self.key, image)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Could not write database image: {e}") from e
        self.last_saved = image
        logger.debug(f"Saved database image ({len(image)} bytes)")

    def clear(self) -> bool:
        """Delete the stored image."""
        self.last_saved = None
        try:
            return self.store.delete(self.key)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Could not delete database image: {e}") from e
