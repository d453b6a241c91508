"""Local client: the single entry point the application talks to.

``create_client()`` returns a ``LocalClient`` exposing the same surface as the
hosted client it stands in for::

    client = create_client()
    await client.auth.sign_in_with_password("a@example.com", "secret1")
    resp = await client.table("items").select().eq("type", "note")

Capabilities that have no local equivalent are stand-ins:

- ``storage``: files are kept as base64 ``data:`` URLs in the key-value store
  under ``storage_{bucket}_{path}``. ``create_signed_url`` returns that data
  URL directly and does NOT enforce ``expires_in``; anyone holding the URL can
  read the file for as long as it exists.
- ``functions.invoke``: fixed placeholder results for the known function
  names, a ``not_implemented`` error for everything else.
- ``rpc``: always an empty result set.
"""

import asyncio
import base64
import logging
import mimetypes
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

from .auth import AuthCallback, LocalAuth
from .broadcast import Subscription, get_channel
from .config import Settings, get_settings
from .database.base import APIError, APIResponse, AuthResponse
from .database.local import LocalDatabase
from .database.query import QueryBuilder
from .errors import NOT_IMPLEMENTED, LaterrError, ObjectNotFoundError, ValidationError
from .hoststore import ByteStore, FileByteStore, KeyValueStore

logger = logging.getLogger(__name__)

# Placeholder results for remote functions
FUNCTION_STUBS: Dict[str, Dict[str, Any]] = {
    "analyze-url": {
        "title": "Mock Title",
        "summary": "Mock summary",
        "tag": "general",
        "description": "Mock description",
    },
    "analyze-file": {
        "title": "Mock Title",
        "summary": "Mock summary",
        "tag": "general",
        "description": "Mock description",
    },
    # No embeddings locally; semantic search degrades, everything else works
    "generate-embedding": {"embedding": None},
}


class AuthClient:
    """Async wrapper over ``LocalAuth``."""

    def __init__(self, auth: LocalAuth):
        self._auth = auth

    async def _call(self, fn: Callable[..., AuthResponse], *args) -> AuthResponse:
        try:
            return await asyncio.to_thread(fn, *args)
        except LaterrError as e:
            return AuthResponse.failure(e)
        except Exception as e:
            logger.exception("Unexpected auth failure")
            return AuthResponse.failure(e)

    async def sign_up(self, email: str, password: str) -> AuthResponse:
        return await self._call(self._auth.sign_up, email, password)

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        return await self._call(self._auth.sign_in_with_password, email, password)

    async def sign_out(self) -> AuthResponse:
        return await self._call(self._auth.sign_out)

    async def get_session(self) -> AuthResponse:
        def read() -> AuthResponse:
            session = self._auth.get_session()
            return AuthResponse(user=session.user if session else None, session=session)

        return await self._call(read)

    async def get_user(self) -> AuthResponse:
        return await self._call(self._auth.get_user)

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        return self._auth.on_auth_state_change(callback)


class BucketClient:
    """File storage stand-in for one bucket."""

    def __init__(self, slots: KeyValueStore, bucket: str):
        self._slots = slots
        self.bucket = bucket

    def _key(self, path: str) -> str:
        if not path:
            raise ValidationError("Storage path cannot be empty")
        return f"storage_{self.bucket}_{path.lstrip('/')}"

    def _put(self, path: str, data: bytes, content_type: Optional[str]) -> Dict[str, Any]:
        mime = content_type or mimetypes.guess_type(path)[0] or "application/octet-stream"
        encoded = base64.b64encode(data).decode("ascii")
        self._slots.set_item(self._key(path), f"data:{mime};base64,{encoded}")
        logger.debug(f"Stored {len(data)} bytes at {self.bucket}/{path}")
        return {"path": path, "full_path": f"{self.bucket}/{path}"}

    async def upload(
        self, path: str, file: Any, content_type: Optional[str] = None
    ) -> APIResponse:
        """Store ``file`` (bytes, a filesystem path, or a binary file object)."""

        def run():
            if isinstance(file, (bytes, bytearray)):
                data = bytes(file)
            elif isinstance(file, Path):
                data = file.read_bytes()
            elif hasattr(file, "read"):
                data = file.read()
            else:
                raise ValidationError("Unsupported file object")
            return self._put(path, data, content_type)

        return await _respond(run)

    async def create_signed_url(self, path: str, expires_in: int = 3600) -> APIResponse:
        """Return the embedded data URL; ``expires_in`` is accepted but not enforced."""

        def run():
            data_url = self._slots.get_item(self._key(path))
            if data_url is None:
                raise ObjectNotFoundError(f"Object not found: {self.bucket}/{path}")
            return {"signedUrl": data_url, "path": path}

        return await _respond(run)

    async def get_public_url(self, path: str) -> APIResponse:
        def run():
            data_url = self._slots.get_item(self._key(path))
            if data_url is None:
                raise ObjectNotFoundError(f"Object not found: {self.bucket}/{path}")
            return {"publicUrl": data_url}

        return await _respond(run)

    async def remove(self, paths: Iterable[str]) -> APIResponse:
        def run():
            return [{"name": p} for p in paths if self._slots.remove_item(self._key(p))]

        return await _respond(run)


class StorageClient:
    def __init__(self, slots: KeyValueStore):
        self._slots = slots

    def from_(self, bucket: str) -> BucketClient:
        return BucketClient(self._slots, bucket)


class FunctionsClient:
    """Remote function stand-in."""

    async def invoke(self, name: str, body: Optional[Dict[str, Any]] = None) -> APIResponse:
        stub = FUNCTION_STUBS.get(name)
        if stub is None:
            logger.warning(f"Function {name} not implemented in local mode")
            return APIResponse(
                error=APIError(
                    message=f"Function {name} not implemented",
                    code="not_implemented",
                    kind=NOT_IMPLEMENTED,
                )
            )
        return APIResponse(data=dict(stub))


class LocalClient:
    """Owns the database handle, the auth subsystem and the stand-ins.

    All database access from this client is serialized on the engine lock
    (statement + image flush as one unit). Clients built on the same store are
    independent handles: their flushes are last-writer-wins on the whole image.
    """

    def __init__(
        self,
        store: ByteStore,
        settings: Optional[Settings] = None,
        channel_name: Optional[str] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.db = LocalDatabase(store)
        self.slots = KeyValueStore(store)
        self.channel = get_channel(channel_name or _channel_name_for(store))
        self._auth = LocalAuth(self.db, self.slots, self.settings, self.channel)
        self.auth = AuthClient(self._auth)
        self.storage = StorageClient(self.slots)
        self.functions = FunctionsClient()

    @property
    def context_id(self) -> str:
        return self._auth.context_id

    def table(self, name: str) -> QueryBuilder:
        return QueryBuilder(self.db, name)

    from_ = table

    async def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        logger.warning(f"RPC function {name} not implemented in local mode")
        return APIResponse(data=[])

    async def open(self) -> APIResponse:
        """Open the database now instead of on first use."""
        return await _respond(self.db.open)

    def close(self) -> None:
        self.db.close()


def create_client(
    data_dir: Optional[Path] = None,
    store: Optional[ByteStore] = None,
    settings: Optional[Settings] = None,
) -> LocalClient:
    """Build a client backed by files in ``data_dir`` (or an explicit store)."""
    settings = settings or get_settings()
    if store is None:
        store = FileByteStore(Path(data_dir or settings.data_dir))
    return LocalClient(store, settings)


async def _respond(fn: Callable[[], Any]) -> APIResponse:
    try:
        data = await asyncio.to_thread(fn)
    except LaterrError as e:
        return APIResponse.failure(e)
    except Exception as e:
        logger.exception("Unexpected local client failure")
        return APIResponse.failure(e)
    return APIResponse(data=data)


def _channel_name_for(store: ByteStore) -> str:
    """Clients sharing a store (same directory or same object) share a session channel."""
    root = getattr(store, "root", None)
    if root is not None:
        return f"laterr_session:{Path(root).resolve()}"
    return f"laterr_session:{getattr(store, 'name', None) or id(store)}"
