"""
Integration Tests: Command Line Interface

Tests:
    - migrate / inspect / purge / demo against a SQLite file
    - configuration errors and missing arguments
"""

import json
import os

import pytest

import sessionstore.__main__ as cli
from sessionstore.tests.conftest import make_config, make_store


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("SESSIONSTORE_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)


@pytest.fixture
def db_args(tmp_path):
    return ["--backend", "sqlite", "--db-path", str(tmp_path / "sessions.db")]


class TestCommands:
    """Tests for each subcommand."""

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_migrate(self, db_args, tmp_path, capsys):
        assert cli.main(db_args + ["migrate"]) == 0
        assert "Session storage ready" in capsys.readouterr().out
        assert (tmp_path / "sessions.db").exists()

    def test_inspect_session(self, db_args, tmp_path, capsys):
        store = make_store(make_config("sqlite", tmp_path))
        sid = store.create({"user": "ada"}).unwrap()
        store.close()

        assert cli.main(db_args + ["inspect", sid]) == 0
        assert json.loads(capsys.readouterr().out) == {"user": "ada"}

    def test_inspect_lists_ids(self, db_args, tmp_path, capsys):
        store = make_store(make_config("sqlite", tmp_path))
        ids = sorted(store.create({"n": i}).unwrap() for i in range(3))
        store.close()

        assert cli.main(db_args + ["inspect", "--limit", "2"]) == 0
        out = capsys.readouterr().out
        assert "3 session(s)" in out
        assert ids[0] in out and ids[1] in out
        assert ids[2] not in out

    def test_inspect_missing(self, db_args, capsys):
        cli.main(db_args + ["migrate"])
        assert cli.main(db_args + ["inspect", "0" * 32]) == 1
        assert "No session" in capsys.readouterr().err

    def test_purge_requires_confirmation(self, db_args, capsys):
        assert cli.main(db_args + ["purge"]) == 1
        assert "--yes" in capsys.readouterr().err

    def test_purge(self, db_args, tmp_path, capsys):
        store = make_store(make_config("sqlite", tmp_path))
        store.create({"a": 1})
        store.create({"b": 2})
        store.close()

        assert cli.main(db_args + ["purge", "--yes"]) == 0
        assert "Removed 2 session(s)" in capsys.readouterr().out

    def test_demo_in_memory(self, capsys):
        assert cli.main(["--backend", "memory", "demo", "--metrics"]) == 0
        out = capsys.readouterr().out
        assert "Demo complete" in out
        assert "'theme': 'dark'" in out
        assert "Token present: False" in out
        assert "Read after delete: None" in out
        assert "session_operations_total" in out

    def test_storage_error_reported(self, db_args, capsys):
        # Table never provisioned, so the admin query fails.
        assert cli.main(db_args + ["inspect"]) == 1
        assert "Error" in capsys.readouterr().err


class TestConfiguration:
    """Tests for configuration handling."""

    def test_bad_env_value(self, monkeypatch, capsys):
        monkeypatch.setenv("SESSIONSTORE_LOCK_TIMEOUT_MS", "soon")
        assert cli.main(["--backend", "memory", "demo"]) == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_invalid_config(self, monkeypatch, capsys):
        monkeypatch.setenv("SESSIONSTORE_TABLE", "bad-name")
        assert cli.main(["--backend", "memory", "migrate"]) == 2

    def test_env_backend(self, monkeypatch, tmp_path, capsys):
        monkeypatch.setenv("SESSIONSTORE_BACKEND", "sqlite")
        monkeypatch.setenv("SESSIONSTORE_SQLITE_PATH", str(tmp_path / "env.db"))
        assert cli.main(["migrate"]) == 0
        assert (tmp_path / "env.db").exists()

    def test_unknown_backend_flag(self):
        with pytest.raises(SystemExit):
            cli.main(["--backend", "mysql", "migrate"])
