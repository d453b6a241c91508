"""Tests for the LocalClient surface and the end-to-end flows it serves."""

import base64
import io

import pytest

from laterr import create_client
from laterr.client import FUNCTION_STUBS, LocalClient
from laterr.database.base import AuthResponse


class TestScenarios:
    """Flows the application depends on, driven through the async surface."""

    @pytest.mark.asyncio
    async def test_sign_up_sign_in_and_save_a_note(self, client):
        signed_up = await client.auth.sign_up("a@example.com", "secret1")
        assert signed_up.error is None

        signed_in = await client.auth.sign_in_with_password("a@example.com", "secret1")
        assert signed_in.error is None
        user_id = signed_in.user.id

        created = await client.table("items").insert(
            {"type": "note", "title": "T", "content": "hello", "user_id": user_id}
        )
        assert created.error is None

        resp = await client.table("items").select("*").eq("user_id", user_id)
        assert resp.error is None
        assert len(resp.data) == 1
        assert resp.data[0]["title"] == "T"
        assert resp.data[0]["tags"] == []

    @pytest.mark.asyncio
    async def test_update_tags(self, client, user):
        created = await client.table("items").insert(
            {"type": "url", "title": "Link", "tags": ["x"], "user_id": user["id"]}
        )
        item_id = created.data["id"]

        updated = await client.table("items").update({"tags": ["x", "y"]}).eq("id", item_id)
        assert updated.error is None

        resp = await client.table("items").select().eq("id", item_id).single()
        assert resp.data["tags"] == ["x", "y"]
        assert resp.data["updated_at"] > resp.data["created_at"]

    @pytest.mark.asyncio
    async def test_sign_out_then_session_is_gone(self, client, signed_in):
        out = await client.auth.sign_out()
        assert out.error is None

        session = await client.auth.get_session()
        assert session.session is None
        assert session.error is None

        user = await client.auth.get_user()
        assert user.error.kind == "credential"


class TestAuthClient:
    """Async wrappers return AuthResponse values."""

    @pytest.mark.asyncio
    async def test_get_session_when_signed_in(self, client, signed_in):
        resp = await client.auth.get_session()
        assert isinstance(resp, AuthResponse)
        assert resp.session == signed_in.session
        assert resp.user == signed_in.user

    @pytest.mark.asyncio
    async def test_errors_are_values(self, client):
        resp = await client.auth.sign_in_with_password("nobody@example.com", "x")
        assert resp.user is None
        assert resp.error.code == "invalid_credentials"


class TestStorage:
    """File storage stand-in."""

    @pytest.mark.asyncio
    async def test_upload_and_signed_url(self, client):
        bucket = client.storage.from_("item-files")
        resp = await bucket.upload("u1/notes.txt", b"hello")
        assert resp.error is None
        assert resp.data["full_path"] == "item-files/u1/notes.txt"

        signed = await bucket.create_signed_url("u1/notes.txt", 60)
        url = signed.data["signedUrl"]
        assert url.startswith("data:text/plain;base64,")
        assert base64.b64decode(url.split(",", 1)[1]) == b"hello"
        assert client.slots.get_item("storage_item-files_u1/notes.txt") == url

    @pytest.mark.asyncio
    async def test_upload_file_object_and_path(self, client, tmp_path):
        bucket = client.storage.from_("b")
        await bucket.upload("a.bin", io.BytesIO(b"\x00\x01"), content_type="application/x-test")
        src = tmp_path / "photo.png"
        src.write_bytes(b"png")
        await bucket.upload("photo.png", src)

        a = (await bucket.get_public_url("a.bin")).data["publicUrl"]
        photo = (await bucket.get_public_url("photo.png")).data["publicUrl"]
        assert a.startswith("data:application/x-test;base64,")
        assert photo.startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_unsupported_upload(self, client):
        resp = await client.storage.from_("b").upload("x", 12345)
        assert resp.error.kind == "invalid_request"

    @pytest.mark.asyncio
    async def test_missing_object(self, client):
        resp = await client.storage.from_("b").create_signed_url("nope")
        assert resp.data is None
        assert resp.error.kind == "not_found"
        assert resp.error.code == "404"

    @pytest.mark.asyncio
    async def test_empty_path(self, client):
        resp = await client.storage.from_("b").upload("", b"x")
        assert resp.error.kind == "invalid_request"

    @pytest.mark.asyncio
    async def test_remove(self, client):
        bucket = client.storage.from_("b")
        await bucket.upload("one", b"1")
        resp = await bucket.remove(["one", "two"])
        assert resp.data == [{"name": "one"}]
        assert (await bucket.get_public_url("one")).error.kind == "not_found"


class TestStandIns:
    """Functions and rpc placeholders."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["analyze-url", "analyze-file"])
    async def test_analyze(self, client, name):
        resp = await client.functions.invoke(name, {"url": "https://example.com"})
        assert resp.error is None
        assert resp.data == FUNCTION_STUBS[name]
        assert resp.data is not FUNCTION_STUBS[name]

    @pytest.mark.asyncio
    async def test_generate_embedding(self, client):
        resp = await client.functions.invoke("generate-embedding", {"text": "x"})
        assert resp.data == {"embedding": None}

    @pytest.mark.asyncio
    async def test_unknown_function(self, client):
        resp = await client.functions.invoke("summarize-everything")
        assert resp.data is None
        assert resp.error.kind == "not_implemented"

    @pytest.mark.asyncio
    async def test_rpc(self, client):
        resp = await client.rpc("match_items", {"query_embedding": [0.1]})
        assert resp.data == []
        assert resp.error is None


class TestLocalClient:
    """Handle ownership and construction."""

    def test_table_and_from_are_aliases(self, client):
        assert client.from_("items").table == client.table("items").table == "items"

    def test_contexts_differ(self, client, other_client):
        assert client.context_id != other_client.context_id
        assert client.channel is other_client.channel

    @pytest.mark.asyncio
    async def test_open(self, client):
        resp = await client.open()
        assert resp.error is None
        assert client.db.engine.is_open

    def test_close_and_reopen_lazily(self, client, user):
        client.close()
        assert not client.db.engine.is_open
        assert client.table("users").select().eq("id", user["id"]).execute().data

    def test_create_client_uses_data_dir(self, settings, tmp_path):
        first = create_client(data_dir=tmp_path / "d", settings=settings)
        first.table("users").insert({"email": "a@example.com", "password_hash": "x"}).execute()
        first.close()

        second = create_client(data_dir=tmp_path / "d", settings=settings)
        rows = second.table("users").select("email").execute().data
        assert rows == [{"email": "a@example.com"}]
        assert (tmp_path / "d" / "laterr_db").exists()
        assert first.channel is second.channel

    def test_create_client_defaults_to_settings_dir(self, settings):
        c = create_client(settings=settings)
        c.table("users").select().execute()
        assert (settings.data_dir / "laterr_db").exists()

    def test_explicit_store(self, store, settings):
        c = create_client(store=store, settings=settings)
        assert isinstance(c, LocalClient)
        assert c.store is store
