"""Host-provided durable stores.

Two layers:
- ``ByteStore``: opaque bytes under string keys (the database image lives here)
- ``KeyValueStore``: string / JSON values on top of a ByteStore (the session
  slot, the token secret and uploaded files live here)
"""

import json
import logging
import os
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable
from urllib.parse import quote

from .errors import PersistenceError

logger = logging.getLogger(__name__)


@runtime_checkable
class ByteStore(Protocol):
    """Durable byte storage keyed by name."""

    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None if the key was never written."""
        ...

    def put(self, key: str, data: bytes) -> None:
        """Overwrite the value under ``key``. Raises PersistenceError on failure."""
        ...

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns False if it did not exist."""
        ...


class MemoryByteStore:
    """Process-local ByteStore, used by tests and throwaway clients."""

    def __init__(self):
        self.name = uuid.uuid4().hex
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(data)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None


class FileByteStore:
    """One file per key under ``root``, replaced atomically on write."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not key:
            raise ValueError("Store key cannot be empty")
        # Keys may contain "/" (bucket paths); keep every key a single file
        return self.root / quote(key, safe="")

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise PersistenceError(f"Could not read {key!r} from store: {e}") from e

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                # Set restrictive permissions (owner read/write only)
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, path)
            except BaseException:
                _unlink_quietly(tmp_name)
                raise
        except OSError as e:
            raise PersistenceError(f"Could not write {key!r} to store: {e}") from e

    def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(f"Could not delete {key!r} from store: {e}") from e


def _unlink_quietly(name: str) -> None:
    try:
        os.unlink(name)
    except OSError:
        pass


class KeyValueStore:
    """String-keyed store of text values, in the manner of browser localStorage."""

    def __init__(self, byte_store: ByteStore):
        self.byte_store = byte_store

    def get_item(self, key: str) -> Optional[str]:
        data = self.byte_store.get(key)
        if data is None:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning(f"Discarding undecodable value under {key!r}")
            return None

    def set_item(self, key: str, value: str) -> None:
        self.byte_store.put(key, value.encode("utf-8"))

    def remove_item(self, key: str) -> bool:
        return self.byte_store.delete(key)

    def get_json(self, key: str) -> Any:
        """Load a JSON value; corrupt or missing values read as None."""
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding corrupt JSON under {key!r}")
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value))
