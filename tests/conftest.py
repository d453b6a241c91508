"""
Pytest fixtures and test configuration for laterr tests.
"""

import logging
import secrets
import uuid

import pytest

from laterr.client import LocalClient
from laterr.config import Settings, get_settings
from laterr.database.local import LocalDatabase
from laterr.hoststore import MemoryByteStore

# Unique per run so no test can lean on a fixed signing secret
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"


class FlakyByteStore(MemoryByteStore):
    """MemoryByteStore whose writes can be switched off to simulate a full disk."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False
        self.writes = 0

    def put(self, key, data):
        if self.fail_writes:
            raise OSError("No space left on device")
        self.writes += 1
        super().put(key, data)


@pytest.fixture
def store():
    return MemoryByteStore()


@pytest.fixture
def flaky_store():
    return FlakyByteStore()


@pytest.fixture
def settings(tmp_path):
    # bcrypt's minimum cost keeps the auth tests fast
    return Settings(
        data_dir=tmp_path,
        jwt_secret_key=_TEST_JWT_SECRET,
        bcrypt_rounds=4,
        log_level="DEBUG",
    )


@pytest.fixture
def channel_name():
    return f"test-session-{uuid.uuid4().hex}"


@pytest.fixture
def client(store, settings, channel_name):
    c = LocalClient(store, settings, channel_name=channel_name)
    yield c
    c.close()


@pytest.fixture
def other_client(store, settings, channel_name):
    """A second context (another "tab") on the same store and channel."""
    c = LocalClient(store, settings, channel_name=channel_name)
    yield c
    c.close()


@pytest.fixture
def db(store):
    database = LocalDatabase(store)
    database.open()
    yield database
    database.close()


@pytest.fixture
def user(client):
    """A users row inserted directly, for tests that only need an owner."""
    resp = (
        client.table("users")
        .insert({"email": f"owner-{uuid.uuid4().hex[:8]}@example.com", "password_hash": "x"})
        .execute()
    )
    assert resp.error is None
    return resp.data


@pytest.fixture
def signed_in(client):
    """Sign up and sign in a@example.com on ``client``; returns the AuthResponse."""
    client._auth.sign_up("a@example.com", "secret1")
    resp = client._auth.sign_in_with_password("a@example.com", "secret1")
    assert resp.error is None
    return resp


@pytest.fixture(autouse=True)
def reset_laterr_logging():
    """Drop file handlers attached by setup_laterr_logging between tests."""
    yield
    laterr_logger = logging.getLogger("laterr")
    for handler in list(laterr_logger.handlers):
        if isinstance(handler, logging.FileHandler):
            laterr_logger.removeHandler(handler)
            handler.close()
    laterr_logger.setLevel(logging.NOTSET)


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    """Environment for CLI tests: fast hashing, isolated data dir, fresh settings."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LATERR_BCRYPT_ROUNDS", "4")
    monkeypatch.delenv("LATERR_JWT_SECRET_KEY", raising=False)
    get_settings.cache_clear()
    yield tmp_path / "data"
    get_settings.cache_clear()
