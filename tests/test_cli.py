"""
Tests for the click command-line interface.
"""

import json
import os
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from chatweave import __version__
from chatweave.cli import main
from chatweave.core.config import DB_PATH_ENV
from chatweave.core.db import Database
from tests.conftest import FakeEmbeddingProvider


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "cli.db")


@pytest.fixture
def claude_export(tmp_path):
    export = [
        {
            "uuid": "c1",
            "name": "Rust lifetimes",
            "created_at": "2024-01-01T00:00:00Z",
            "chat_messages": [
                {
                    "uuid": "m1",
                    "sender": "human",
                    "created_at": "2024-01-01T00:00:01Z",
                    "content": [{"type": "text", "text": "explain lifetimes and the borrow checker"}],
                },
                {
                    "uuid": "m2",
                    "sender": "assistant",
                    "created_at": "2024-01-01T00:00:02Z",
                    "content": [{"type": "text", "text": "the borrow checker tracks each lifetime"}],
                },
            ],
        }
    ]
    path = tmp_path / "conversations.json"
    path.write_text(json.dumps(export), encoding="utf-8")
    return str(path)


def _ingest(runner, db_path, export):
    return runner.invoke(main, ["--db-path", db_path, "ingest", export, "--vendor", "claude"])


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestIngest:
    """Tests for the ingest command."""

    def test_ingest(self, runner, db_path, claude_export):
        result = _ingest(runner, db_path, claude_export)
        assert result.exit_code == 0, result.output
        assert "Ingestion complete!" in result.output
        assert "Conversations: 1 (1 new)" in result.output
        assert "Messages inserted: 2" in result.output

        db = Database(db_path)
        assert db.count_messages() == 2
        db.close()

    def test_reingest_skips_duplicates(self, runner, db_path, claude_export):
        _ingest(runner, db_path, claude_export)
        result = _ingest(runner, db_path, claude_export)
        assert result.exit_code == 0
        assert "Messages inserted: 0" in result.output
        assert "Messages skipped (duplicates): 2" in result.output

    def test_source_label(self, runner, db_path, claude_export):
        runner.invoke(
            main, ["--db-path", db_path, "ingest", claude_export, "--vendor", "claude", "--source-label", "Work"]
        )
        db = Database(db_path)
        assert [s.label for s in db.list_sources()] == ["Work"]
        db.close()

    def test_bad_json_aborts(self, runner, db_path, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("[{", encoding="utf-8")
        result = runner.invoke(main, ["--db-path", db_path, "ingest", str(bad), "--vendor", "chatgpt"])
        assert result.exit_code == 1
        assert "Error during ingestion" in result.output

    def test_vendor_is_required(self, runner, db_path, claude_export):
        result = runner.invoke(main, ["--db-path", db_path, "ingest", claude_export])
        assert result.exit_code == 2

    def test_command_level_db_path(self, runner, db_path, claude_export):
        result = runner.invoke(main, ["ingest", claude_export, "--vendor", "claude", "--db-path", db_path])
        assert result.exit_code == 0
        db = Database(db_path)
        assert db.count_conversations() == 1
        db.close()


class TestSearchAndStats:
    """Tests for the search, stats and export-snapshot commands."""

    def test_search(self, runner, db_path, claude_export):
        _ingest(runner, db_path, claude_export)
        result = runner.invoke(main, ["--db-path", db_path, "search", "borrow"])
        assert result.exit_code == 0
        assert "Found 2 results matching 'borrow'" in result.output
        assert "Rust lifetimes" in result.output

    def test_search_role_facet(self, runner, db_path, claude_export):
        _ingest(runner, db_path, claude_export)
        result = runner.invoke(main, ["--db-path", db_path, "search", "borrow", "--role", "assistant"])
        assert "Found 1 results" in result.output

    def test_search_conversations(self, runner, db_path, claude_export):
        _ingest(runner, db_path, claude_export)
        result = runner.invoke(main, ["--db-path", db_path, "search", "borrow", "--conversations"])
        assert "Found 1 results" in result.output

    def test_no_results(self, runner, db_path, claude_export):
        _ingest(runner, db_path, claude_export)
        result = runner.invoke(main, ["--db-path", db_path, "search", "kotlin"])
        assert result.exit_code == 0
        assert "No results matching 'kotlin'" in result.output

    def test_stats(self, runner, db_path, claude_export):
        _ingest(runner, db_path, claude_export)
        result = runner.invoke(main, ["--db-path", db_path, "stats"])
        assert result.exit_code == 0
        assert "Conversations: 1" in result.output
        assert "Messages: 2" in result.output
        assert "Sources: 1" in result.output
        assert "(1 conversations)" in result.output

    def test_export_snapshot(self, runner, db_path, claude_export, tmp_path):
        _ingest(runner, db_path, claude_export)
        out = tmp_path / "snapshot.db"
        result = runner.invoke(main, ["--db-path", db_path, "export-snapshot", str(out)])
        assert result.exit_code == 0
        assert "Snapshot written to" in result.output

        restored = Database(":memory:", snapshot=out.read_bytes())
        assert restored.count_messages() == 2
        restored.close()


@pytest.fixture
def similar_store(db_path):
    db = Database(db_path)
    a = db.insert_conversation({"source_id": "src-a", "ext_id": "a", "title": "Borrowing", "updated_at": 2})
    db.insert_message(a, "user", 1, "rust borrow checker")
    b = db.insert_conversation({"source_id": "src-b", "ext_id": "b", "title": "Checker", "updated_at": 1})
    db.insert_message(b, "user", 1, "rust borrow checker lifetime")
    db.save()
    db.close()
    return {"a": a, "b": b}


class TestConsolidate:
    """Tests for the consolidate and related commands."""

    def test_consolidate(self, runner, db_path, similar_store):
        with patch("chatweave.cli.commands.consolidate.create_provider", return_value=FakeEmbeddingProvider()):
            result = runner.invoke(main, ["--db-path", db_path, "consolidate"])
        assert result.exit_code == 0, result.output
        assert "Consolidation complete!" in result.output
        assert "Embeddings: 2/2" in result.output
        assert "Bundles: 1" in result.output

        db = Database(db_path)
        assert db.relationships.count() == 1
        db.close()

    def test_consolidate_threshold(self, runner, db_path, similar_store):
        with patch("chatweave.cli.commands.consolidate.create_provider", return_value=FakeEmbeddingProvider()):
            result = runner.invoke(main, ["--db-path", db_path, "consolidate", "--threshold", "0.95"])
        assert "Bundles: 2" in result.output

    def test_consolidate_rebuild(self, runner, db_path, similar_store):
        with patch("chatweave.cli.commands.consolidate.create_provider", return_value=FakeEmbeddingProvider()):
            runner.invoke(main, ["--db-path", db_path, "consolidate"])
            result = runner.invoke(main, ["--db-path", db_path, "consolidate", "--rebuild"])
        assert "Embeddings: 2/2" in result.output

    def test_consolidate_bad_provider(self, runner, db_path, similar_store):
        with patch(
            "chatweave.cli.commands.consolidate.create_provider",
            side_effect=ValueError("Unknown embedding provider: magic"),
        ):
            result = runner.invoke(main, ["--db-path", db_path, "consolidate"])
        assert result.exit_code == 1
        assert "Embedding provider unavailable" in result.output

    def test_related(self, runner, db_path, similar_store):
        with patch("chatweave.cli.commands.consolidate.create_provider", return_value=FakeEmbeddingProvider()):
            runner.invoke(main, ["--db-path", db_path, "consolidate"])
        result = runner.invoke(main, ["--db-path", db_path, "related", str(similar_store["a"])])
        assert result.exit_code == 0
        assert "Related to 'Borrowing'" in result.output
        assert "Checker" in result.output

    def test_related_without_embeddings(self, runner, db_path, similar_store):
        result = runner.invoke(main, ["--db-path", db_path, "related", str(similar_store["a"])])
        assert result.exit_code == 0
        assert "No conversations related to 'Borrowing'" in result.output

    def test_related_missing(self, runner, db_path, similar_store):
        result = runner.invoke(main, ["--db-path", db_path, "related", "999"])
        assert result.exit_code == 1
        assert "Conversation 999 not found" in result.output


def test_web_runs_uvicorn(runner, db_path, monkeypatch):
    monkeypatch.setenv(DB_PATH_ENV, "unused.db")
    with patch("chatweave.cli.commands.web.uvicorn.run") as run:
        result = runner.invoke(main, ["web", "--port", "8123", "--db-path", db_path])
    assert result.exit_code == 0
    run.assert_called_once_with("chatweave.api.main:app", host="127.0.0.1", port=8123, reload=False)
    assert os.environ[DB_PATH_ENV] == db_path
