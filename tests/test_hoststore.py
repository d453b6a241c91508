"""Tests for the host byte stores and the key-value layer."""

import logging
import stat

import pytest

from laterr.errors import PersistenceError
from laterr.hoststore import ByteStore, FileByteStore, KeyValueStore, MemoryByteStore


@pytest.fixture(params=["memory", "file"])
def byte_store(request, tmp_path):
    if request.param == "memory":
        return MemoryByteStore()
    return FileByteStore(tmp_path / "store")


class TestByteStores:
    """Both implementations honor the same contract."""

    def test_protocol(self, byte_store):
        assert isinstance(byte_store, ByteStore)

    def test_missing_key(self, byte_store):
        assert byte_store.get("nope") is None

    def test_put_get_overwrite(self, byte_store):
        byte_store.put("k", b"one")
        byte_store.put("k", b"two")
        assert byte_store.get("k") == b"two"

    def test_delete(self, byte_store):
        byte_store.put("k", b"v")
        assert byte_store.delete("k") is True
        assert byte_store.delete("k") is False
        assert byte_store.get("k") is None


class TestFileByteStore:
    """File layout details."""

    def test_keys_with_slashes_stay_in_root(self, tmp_path):
        store = FileByteStore(tmp_path)
        store.put("storage_avatars_me/face.png", b"png")
        files = [p for p in tmp_path.iterdir() if not p.name.startswith(".")]
        assert len(files) == 1
        assert files[0].parent == tmp_path
        assert store.get("storage_avatars_me/face.png") == b"png"

    def test_owner_only_permissions(self, tmp_path):
        store = FileByteStore(tmp_path)
        store.put("laterr_db", b"x")
        mode = stat.S_IMODE((tmp_path / "laterr_db").stat().st_mode)
        assert mode == 0o600

    def test_creates_root(self, tmp_path):
        store = FileByteStore(tmp_path / "a" / "b")
        store.put("k", b"v")
        assert (tmp_path / "a" / "b" / "k").exists()

    def test_no_temp_files_left(self, tmp_path):
        store = FileByteStore(tmp_path)
        store.put("k", b"v")
        store.put("k", b"w")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["k"]

    def test_write_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where the root directory should be")
        store = FileByteStore(blocker)
        with pytest.raises(PersistenceError):
            store.put("k", b"v")

    def test_empty_key(self, tmp_path):
        with pytest.raises(ValueError):
            FileByteStore(tmp_path).get("")


class TestKeyValueStore:
    """String and JSON values over a byte store."""

    def test_items(self):
        kv = KeyValueStore(MemoryByteStore())
        assert kv.get_item("k") is None
        kv.set_item("k", "välue")
        assert kv.get_item("k") == "välue"
        assert kv.remove_item("k") is True
        assert kv.get_item("k") is None

    def test_json(self):
        kv = KeyValueStore(MemoryByteStore())
        kv.set_json("session", {"token": "t", "n": [1, 2]})
        assert kv.get_json("session") == {"token": "t", "n": [1, 2]}
        assert kv.get_json("missing") is None

    def test_corrupt_json_reads_as_none(self, caplog):
        kv = KeyValueStore(MemoryByteStore())
        kv.set_item("session", "{not json")
        with caplog.at_level(logging.WARNING, logger="laterr.hoststore"):
            assert kv.get_json("session") is None
        assert "corrupt JSON" in caplog.text

    def test_undecodable_bytes(self):
        raw = MemoryByteStore()
        raw.put("k", b"\xff\xfe\xfa")
        assert KeyValueStore(raw).get_item("k") is None
