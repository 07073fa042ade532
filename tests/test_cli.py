"""
Tests for the command-line interface.

Each test gets its own store under tmp_path. With no API keys in the
environment the store defaults to the offline keyword classifier.
"""

import json

import pytest
from typer.testing import CliRunner

from classify.cli import app

runner = CliRunner()


@pytest.fixture
def store(tmp_path):
    return str(tmp_path / "store")


def run(store, *args, input=None):
    return runner.invoke(app, ["--store", store, *args], input=input)


def run_json(store, *args, input=None):
    return runner.invoke(app, ["--store", store, "--json", *args], input=input)


def _added_id(result) -> str:
    return json.loads(result.stdout)["content"]["id"]


class TestAdd:

    def test_add_text(self, store):
        result = run(store, "add", "Building a REST API in Rust with a Redis cache")
        assert result.exit_code == 0, result.output
        assert "[programming, rust, api, database]" in result.stdout

    def test_add_json(self, store):
        result = run_json(store, "add", "web pages and html")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["content"]["tags"] == ["web"]
        assert data["content"]["body"] == "web pages and html"

    def test_add_from_stdin(self, store):
        result = run_json(store, "add", "-", input="an sql database\n")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["content"]["tags"] == ["database"]

    def test_add_empty(self, store):
        result = run(store, "add", "   ")
        assert result.exit_code == 1

    def test_add_duplicate(self, store):
        run(store, "add", "web pages and html")
        result = run(store, "add", "web pages and html")
        assert result.exit_code == 0
        assert "Already classified" in result.output

    def test_add_fetch_failure(self, store):
        result = run(store, "add", "http://127.0.0.1/private")
        assert result.exit_code == 1
        assert "Error (fetch)" in result.output

    def test_add_fetch_failure_json(self, store):
        result = run_json(store, "add", "http://127.0.0.1/private")
        assert result.exit_code == 1
        assert json.loads(result.output)["error"]["kind"] == "fetch"


class TestQueries:

    def test_tags_and_counts(self, store):
        run(store, "add", "rust programming")
        run(store, "add", "rust web server")

        result = run(store, "tags")
        assert result.exit_code == 0
        assert result.stdout.split() == ["programming", "rust", "web"]

        result = run_json(store, "tags", "--counts")
        assert json.loads(result.stdout) == {"programming": 2, "rust": 2, "web": 1}

    def test_find_union(self, store):
        a = _added_id(run_json(store, "add", "rust notes"))
        b = _added_id(run_json(store, "add", "web notes"))
        run(store, "add", "sql notes")

        result = run_json(store, "find", "-t", "rust", "-t", "WEB")
        assert result.exit_code == 0, result.output
        ids = {r["id"] for r in json.loads(result.stdout)}
        assert ids == {a, b}

    def test_find_requires_tag(self, store):
        result = run(store, "find")
        assert result.exit_code != 0

    def test_get(self, store):
        id = _added_id(run_json(store, "add", "rust notes"))
        result = run(store, "get", id)
        assert result.exit_code == 0
        assert f"id: {id}" in result.stdout
        assert "rust notes" in result.stdout

        result = run(store, "get", id, "--text")
        assert result.stdout == "rust notes\n"

    def test_get_missing(self, store):
        result = run(store, "get", "0" * 32)
        assert result.exit_code == 1
        assert "Not found" in result.output

    def test_get_invalid_id(self, store):
        result = run(store, "get", "../../etc/passwd")
        assert result.exit_code == 1

    def test_list(self, store):
        a = _added_id(run_json(store, "add", "rust notes"))
        result = run_json(store, "list")
        assert [r["id"] for r in json.loads(result.stdout)] == [a]


class TestDelete:

    def test_delete_reports_removed_tags(self, store):
        a = _added_id(run_json(store, "add", "rust and web"))
        run(store, "add", "web only")

        result = run(store, "delete", a)
        assert result.exit_code == 0, result.output
        assert "removed tags: programming, rust" in result.stdout

        result = run(store, "tags")
        assert result.stdout.split() == ["web"]

    def test_delete_missing_is_ok(self, store):
        result = run_json(store, "delete", "0" * 32)
        assert result.exit_code == 0
        assert json.loads(result.stdout) == [{
            "id": "0" * 32,
            "found": False,
            "removed_tags": [],
            "complete": True,
            "tag_cleanup_error": None,
        }]


class TestMaintenance:

    def test_reindex(self, store):
        a = _added_id(run_json(store, "add", "rust notes"))
        result = run(store, "reindex", a)
        assert result.exit_code == 0
        assert a in result.stdout

    def test_reindex_missing(self, store):
        result = run(store, "reindex", "0" * 32)
        assert result.exit_code == 1

    def test_repair(self, store):
        run(store, "add", "rust notes")
        result = run_json(store, "repair")
        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert report["records_scanned"] == 1
        assert report["dangling_removed"] == []


class TestConfigCommand:

    def test_shows_defaults(self, store):
        result = run_json(store, "config")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["content"] == {"name": "filesystem"}
        assert data["tags"] == {"name": "sqlite"}
        assert data["classifier"] == {"name": "keyword"}

    def test_secrets_hidden(self, store, monkeypatch):
        from pathlib import Path

        from classify.config import ProviderConfig, StoreConfig, save_config

        save_config(StoreConfig(path=Path(store), tags=ProviderConfig("redis")))
        monkeypatch.setenv("REDIS_PASSWORD", "hunter2")
        result = run(store, "config")
        assert result.exit_code == 0, result.output
        assert "hunter2" not in result.stdout
        assert "tags: redis" in result.stdout


def test_unexpected_error_logged_to_store(store, monkeypatch):
    from pathlib import Path

    from classify import cli
    from classify.api import Tagger

    def boom(self):
        raise RuntimeError("boom")

    monkeypatch.setattr(Tagger, "list_tags", boom)
    monkeypatch.setattr("sys.argv", ["classify", "--store", store, "tags"])
    with pytest.raises(SystemExit) as exc_info:
        cli.main()
    assert exc_info.value.code == 1

    log = Path(store) / "classify-errors.log"
    assert log.exists()
    assert "boom" in log.read_text()


def test_version():
    from classify import __version__

    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_no_args_shows_help():
    result = runner.invoke(app, [])
    assert "Usage" in result.output
