"""Tests for the laterr CLI."""

import json

import pytest

from laterr.cli.__main__ import main
from laterr.client import create_client
from laterr.config import get_settings


def run(data_dir, *argv):
    main(["--data-dir", str(data_dir), *argv])


class TestAccountCommands:
    """signup / login / whoami / logout."""

    def test_full_cycle(self, cli_env, capsys):
        run(cli_env, "signup", "a@example.com", "--password", "secret1")
        run(cli_env, "login", "a@example.com", "--password", "secret1")
        run(cli_env, "whoami")
        out = capsys.readouterr().out
        assert "Created account a@example.com" in out
        assert "Signed in as a@example.com" in out
        assert out.strip().splitlines()[-2].startswith("a@example.com")

        run(cli_env, "logout")
        assert "Signed out" in capsys.readouterr().out

        with pytest.raises(SystemExit) as exc:
            run(cli_env, "whoami")
        assert exc.value.code == 1
        assert "Auth session missing" in capsys.readouterr().out

    def test_whoami_json(self, cli_env, capsys):
        run(cli_env, "signup", "a@example.com", "--password", "secret1")
        run(cli_env, "login", "a@example.com", "--password", "secret1")
        capsys.readouterr()
        run(cli_env, "whoami", "--json")
        data = json.loads(capsys.readouterr().out)
        assert data["user"]["email"] == "a@example.com"
        assert data["expires_at"]

    def test_bad_password(self, cli_env, capsys):
        run(cli_env, "signup", "a@example.com", "--password", "secret1")
        with pytest.raises(SystemExit) as exc:
            run(cli_env, "login", "a@example.com", "--password", "nope")
        assert exc.value.code == 1
        assert "Invalid login credentials" in capsys.readouterr().out

    def test_duplicate_signup(self, cli_env, capsys):
        run(cli_env, "signup", "a@example.com", "--password", "secret1")
        with pytest.raises(SystemExit):
            run(cli_env, "signup", "a@example.com", "--password", "secret1")
        assert "User already registered" in capsys.readouterr().out

    def test_password_prompt(self, cli_env, capsys, monkeypatch):
        monkeypatch.setattr("getpass.getpass", lambda prompt="": "secret1")
        run(cli_env, "signup", "a@example.com")
        assert "Created account" in capsys.readouterr().out


class TestDataCommands:
    """status / query / export / import / reset."""

    @pytest.fixture
    def seeded(self, cli_env):
        client = create_client(data_dir=cli_env, settings=get_settings())
        user = client.table("users").insert(
            {"email": "a@example.com", "password_hash": "x"}
        ).execute().data
        client.table("items").insert(
            [
                {"type": "note", "title": "first", "user_id": user["id"], "tags": ["x"]},
                {"type": "url", "title": "second", "user_id": user["id"]},
            ]
        ).execute()
        client.close()
        return cli_env

    def test_status(self, seeded, capsys):
        run(seeded, "status", "--json")
        data = json.loads(capsys.readouterr().out)
        assert data["counts"]["items"] == 2
        assert data["counts"]["users"] == 1
        assert data["signed_in_as"] is None

    def test_status_text(self, seeded, capsys):
        run(seeded, "status")
        out = capsys.readouterr().out
        assert "items" in out
        assert "signed out" in out

    def test_query_filters(self, seeded, capsys):
        run(seeded, "query", "items", "--eq", "type=note", "--json")
        rows = json.loads(capsys.readouterr().out)
        assert [r["title"] for r in rows] == ["first"]
        assert rows[0]["tags"] == ["x"]

    def test_query_order_limit(self, seeded, capsys):
        run(seeded, "query", "items", "--order", "created_at", "--desc", "--limit", "1", "--json")
        rows = json.loads(capsys.readouterr().out)
        assert [r["title"] for r in rows] == ["second"]

    def test_query_text_hides_password_hash(self, seeded, capsys):
        run(seeded, "query", "users")
        out = capsys.readouterr().out
        assert "email=a@example.com" in out
        assert "password_hash" not in out

    def test_query_no_rows(self, seeded, capsys):
        run(seeded, "query", "items", "--eq", "type=video")
        assert "(no rows)" in capsys.readouterr().out

    def test_query_unknown_table(self, seeded):
        with pytest.raises(SystemExit) as exc:
            run(seeded, "query", "sqlite_master")
        assert exc.value.code == 1

    def test_export_import(self, seeded, tmp_path, capsys):
        image = tmp_path / "backup.db"
        run(seeded, "export", str(image))
        assert image.exists()

        fresh = tmp_path / "fresh"
        run(fresh, "import", str(image))
        capsys.readouterr()
        run(fresh, "query", "items", "--json")
        assert len(json.loads(capsys.readouterr().out)) == 2

    def test_import_missing_file(self, seeded, tmp_path):
        with pytest.raises(SystemExit):
            run(seeded, "import", str(tmp_path / "missing.db"))

    def test_reset_requires_yes(self, seeded, capsys):
        with pytest.raises(SystemExit):
            run(seeded, "reset")
        run(seeded, "reset", "--yes")
        capsys.readouterr()
        run(seeded, "query", "items", "--json")
        assert json.loads(capsys.readouterr().out) == []
