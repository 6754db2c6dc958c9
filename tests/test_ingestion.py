"""
Tests for the ingestion service.
"""

import json

import pytest

from chatweave.core import ids
from chatweave.core.db import Database
from chatweave.core.errors import DecodeError
from chatweave.core.models import NormalizedRecord
from chatweave.services.ingestion import IngestionService


@pytest.fixture
def db():
    store = Database(":memory:")
    yield store
    store.close()


@pytest.fixture
def service(db):
    return IngestionService(db)


def _records():
    """Two conversations in the camelCase interchange shape."""
    return [
        {
            "vendor": "claude",
            "sourceId": "src-claude",
            "conversationId": "conv-1",
            "role": "user",
            "createdAt": 1000,
            "title": "Sorting",
            "text": "how do I sort?",
        },
        {
            "vendor": "claude",
            "sourceId": "src-claude",
            "conversationId": "conv-1",
            "role": "assistant",
            "createdAt": 2000,
            "title": "Sorting",
            "text": "use sorted()",
        },
        {
            "vendor": "claude",
            "sourceId": "src-claude",
            "conversationId": "conv-2",
            "role": "user",
            "createdAt": 500,
            "title": "Rust",
            "text": "what is a lifetime?",
        },
    ]


class TestIngest:
    """Tests for IngestionService.ingest()."""

    def test_basic_batch(self, db, service):
        result = service.ingest(_records())

        assert result.records == 3
        assert result.conversations == 2
        assert result.conversations_created == 2
        assert result.messages_inserted == 3
        assert result.messages_skipped == 0
        assert result.errors == []

        assert db.count_conversations() == 2
        source = db.get_source("src-claude")
        assert source is not None
        assert source.vendor.value == "claude"

    def test_conversation_fields(self, db, service):
        service.ingest(_records())
        conv = db.conversations.get_by_ext_id("src-claude", "conv-1")

        assert conv.title == "Sorting"
        assert conv.started_at == 1000
        assert conv.updated_at == 2000
        assert conv.stable_id == ids.conversation_id("claude", "conv-1", "Sorting")

        messages = db.get_conversation_messages(conv.id)
        assert [m.text for m in messages] == ["how do I sort?", "use sorted()"]
        assert messages[0].stable_id == ids.message_id(
            "claude", conv.stable_id, "user", 1000, "how do I sort?"
        )

    def test_reingest_is_noop(self, db, service):
        service.ingest(_records())
        again = service.ingest(_records())

        assert again.conversations == 2
        assert again.conversations_created == 0
        assert again.messages_inserted == 0
        assert again.messages_skipped == 3
        assert db.count_messages() == 3

    def test_superset_adds_only_new(self, db, service):
        service.ingest(_records())
        extended = _records() + [
            {
                "vendor": "claude",
                "sourceId": "src-claude",
                "conversationId": "conv-1",
                "role": "user",
                "createdAt": 3000,
                "title": "Sorting",
                "text": "and in reverse?",
            }
        ]
        result = service.ingest(extended)

        assert result.messages_inserted == 1
        assert result.messages_skipped == 3
        conv = db.conversations.get_by_ext_id("src-claude", "conv-1")
        assert conv.updated_at == 3000
        assert db.count_messages(conv.id) == 3

    def test_snake_case_and_models(self, db, service):
        records = [
            NormalizedRecord(
                vendor="gemini",
                source_id="src-g",
                conversation_id="g1",
                role="user",
                created_at=10,
                text="tomato",
            ),
            {
                "vendor": "gemini",
                "source_id": "src-g",
                "conversation_id": "g1",
                "role": "assistant",
                "created_at": 20,
                "text": "soil",
            },
        ]
        result = service.ingest(records)
        assert result.conversations == 1
        assert result.messages_inserted == 2

    def test_default_source_id(self, db, service):
        record = {k: v for k, v in _records()[0].items() if k != "sourceId"}
        result = service.ingest([record], source_id="src-default")
        assert result.messages_inserted == 1
        assert db.get_source("src-default") is not None

    def test_malformed_records_are_reported(self, db, service):
        bad = [
            {"vendor": "claude", "sourceId": "src-x", "role": "user", "text": "no timestamp"},
            {"vendor": "cursor", "sourceId": "src-x", "role": "user", "createdAt": 1, "text": "x"},
            {"vendor": "claude", "sourceId": "src-x", "role": "critic", "createdAt": 1, "text": "x"},
            "not a record",
        ]
        result = service.ingest(bad + _records())

        assert result.records == 7
        assert len(result.errors) == 4
        assert result.errors[0].source == "src-x"
        assert result.errors[3].source == "unknown"
        assert result.messages_inserted == 3

    def test_records_without_conversation_id_group_by_title(self, db, service):
        records = [
            {"vendor": "grok", "sourceId": "src-k", "role": "user", "createdAt": 1, "title": "A", "text": "x"},
            {"vendor": "grok", "sourceId": "src-k", "role": "assistant", "createdAt": 2, "title": "A", "text": "y"},
            {"vendor": "grok", "sourceId": "src-k", "role": "user", "createdAt": 3, "title": "B", "text": "z"},
        ]
        result = service.ingest(records)
        assert result.conversations == 2
        assert db.count_conversations() == 2

        again = service.ingest(records)
        assert again.conversations_created == 0
        assert again.messages_inserted == 0

    def test_untitled_conversations_from_different_files_stay_apart(self, db, service):
        records = [
            {
                "vendor": "grok",
                "sourceId": "src-k",
                "role": "user",
                "createdAt": 1,
                "title": "Untitled",
                "text": "plan a trip",
                "rawPath": "/exports/one.json",
            },
            {
                "vendor": "grok",
                "sourceId": "src-k",
                "role": "user",
                "createdAt": 2,
                "title": "Untitled",
                "text": "fix my bike",
                "rawPath": "/exports/two.json",
            },
        ]
        result = service.ingest(records)
        assert result.conversations == 2
        assert db.count_conversations() == 2

        again = service.ingest(records)
        assert again.conversations_created == 0
        assert again.messages_inserted == 0

    def test_likely_duplicates_are_counted_and_kept(self, db, service):
        base = {"vendor": "claude", "sourceId": "src-c", "conversationId": "c1", "role": "user"}
        records = [
            dict(base, createdAt=1000, text="How do I sort a list in Python?"),
            dict(base, createdAt=30_000, text="How do I sort a list in python"),
            dict(base, role="assistant", createdAt=40_000, text="Use sorted()."),
        ]
        result = service.ingest(records)
        assert result.likely_duplicates == 1
        assert result.messages_inserted == 3

    def test_does_not_save(self, tmp_path):
        path = tmp_path / "store.db"
        store = Database(str(path))
        IngestionService(store).ingest(_records())
        store.close()

        reopened = Database(str(path))
        assert reopened.count_messages() == 0
        reopened.close()


class TestIngestFile:
    """Tests for IngestionService.ingest_file()."""

    def test_claude_export(self, db, service, tmp_path):
        export = [
            {
                "uuid": "c1",
                "name": "Lifetimes",
                "created_at": "2024-01-01T00:00:00Z",
                "chat_messages": [
                    {
                        "uuid": "m1",
                        "sender": "human",
                        "created_at": "2024-01-01T00:00:01Z",
                        "content": [{"type": "text", "text": "explain lifetimes"}],
                    },
                    {
                        "uuid": "m2",
                        "sender": "assistant",
                        "created_at": "2024-01-01T00:00:02Z",
                        "content": [{"type": "text", "text": "they are scopes"}],
                    },
                ],
            },
            {"uuid": "broken"},
        ]
        path = tmp_path / "conversations.json"
        path.write_text(json.dumps(export), encoding="utf-8")

        result = service.ingest_file(path, "claude", label="Personal")

        assert result.conversations == 1
        assert result.messages_inserted == 2
        assert len(result.errors) == 1

        sources = db.list_sources()
        assert len(sources) == 1
        assert sources[0].label == "Personal"
        assert sources[0].id == ids.source_id("claude", str(path.resolve()))

        conv = db.conversations.get_by_ext_id(sources[0].id, "c1")
        assert conv.raw_path == str(path)

    def test_single_conversation_object(self, service, tmp_path):
        path = tmp_path / "one.json"
        path.write_text(
            json.dumps(
                {
                    "conversation": {"id": "k1", "title": "Moon", "create_time": 1714521600},
                    "responses": [{"response": {"message": "how far?", "sender": "human"}}],
                }
            ),
            encoding="utf-8",
        )
        result = service.ingest_file(str(path), "grok")
        assert result.messages_inserted == 1

    def test_reingesting_file_is_noop(self, service, tmp_path):
        path = tmp_path / "one.json"
        path.write_text(
            json.dumps({"conversationId": "g1", "createdTime": 1704067200, "events": [{"author": "user", "text": "hi"}]}),
            encoding="utf-8",
        )
        service.ingest_file(path, "gemini")
        again = service.ingest_file(path, "gemini")
        assert again.messages_inserted == 0
        assert again.messages_skipped == 1

    def test_bad_json(self, service, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(DecodeError):
            service.ingest_file(path, "chatgpt")

    def test_missing_file(self, service, tmp_path):
        with pytest.raises(DecodeError):
            service.ingest_file(tmp_path / "missing.json", "chatgpt")

    def test_unknown_vendor(self, service, tmp_path):
        with pytest.raises(ValueError):
            service.ingest_file(tmp_path / "x.json", "cursor")
