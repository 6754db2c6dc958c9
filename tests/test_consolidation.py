"""
Tests for the consolidation service.

The fake embedding provider (see conftest) maps each vocabulary word to
its own dimension, so expected similarities can be worked out by hand.
"""

import threading
from unittest.mock import patch

import pytest

from chatweave.core.db import Database
from chatweave.core.models import RelationshipType
from chatweave.services import consolidation
from chatweave.services.consolidation import ConsolidationService, classify_similarity, extract_topics
from tests.conftest import FakeEmbeddingProvider


@pytest.fixture
def db():
    store = Database(":memory:")
    yield store
    store.close()


@pytest.fixture
def corpus(db):
    """
    Three conversations from three vendors.

    The Claude and ChatGPT threads use the same vocabulary (similarity
    1.0); the Gemini one shares no word with them.
    """
    claude = db.add_source("claude", "/exports/claude.json")
    chatgpt = db.add_source("chatgpt", "/exports/chatgpt.json")
    gemini = db.add_source("gemini", "/exports/gemini.json")

    a = db.insert_conversation({"source_id": claude, "ext_id": "a", "title": "Sorting in Python", "updated_at": 3000})
    db.insert_message(a, "user", 1000, "python sort list")
    db.insert_message(a, "assistant", 1100, "use sorted with lambda")

    b = db.insert_conversation({"source_id": chatgpt, "ext_id": "b", "title": "Python sorting", "updated_at": 2000})
    db.insert_message(b, "user", 900, "python sort list")
    db.insert_message(b, "assistant", 950, "sorted lambda")

    c = db.insert_conversation({"source_id": gemini, "ext_id": "c", "title": None, "updated_at": 1000})
    db.insert_message(c, "user", 500, "garden tomato soil")

    return {"a": a, "b": b, "c": c, "sources": {"claude": claude, "chatgpt": chatgpt, "gemini": gemini}}


class TestClassifySimilarity:
    """Tests for classify_similarity()."""

    def test_bands(self):
        assert classify_similarity(0.95) == RelationshipType.SIMILAR
        assert classify_similarity(0.9) == RelationshipType.SIMILAR
        assert classify_similarity(0.85) == RelationshipType.RELATED
        assert classify_similarity(0.75) == RelationshipType.RELATED
        assert classify_similarity(0.7) == RelationshipType.RELATED
        assert classify_similarity(0.65) is None

    def test_custom_threshold(self):
        assert classify_similarity(0.6, threshold=0.5) == RelationshipType.RELATED
        assert classify_similarity(0.85, threshold=0.88) is None


def test_extract_topics_filters_and_orders():
    texts = [
        "Python would sort lists; python should sort tuples",
        "The python docs have examples",
        None,
    ]
    # python=3, sort=2, then single occurrences alphabetically
    assert extract_topics(texts) == ["python", "sort", "docs", "examples", "lists"]
    assert extract_topics([]) == []


class TestGenerateEmbeddings:
    """Tests for generate_embeddings()."""

    def test_embeds_all_messages_once(self, db, corpus, fake_provider):
        service = ConsolidationService(db, provider=fake_provider)
        result = service.generate_embeddings()
        assert result.processed == 5
        assert result.succeeded == 5
        assert not result.cancelled
        assert db.embeddings.count("fake-model") == 5

        again = service.generate_embeddings()
        assert again.processed == 0

    def test_provider_errors_are_collected(self, db, corpus):
        provider = FakeEmbeddingProvider(fail_on="tomato")
        result = ConsolidationService(db, provider=provider).generate_embeddings()
        assert result.processed == 5
        assert result.succeeded == 4
        assert len(result.errors) == 1
        assert result.errors[0].source.startswith("message:")

    def test_unexpected_provider_exceptions_are_collected(self, db):
        class FlakyProvider(FakeEmbeddingProvider):
            def _fetch(self, text):
                if "boom" in text:
                    raise ConnectionError("provider socket reset")
                return super()._fetch(text)

        conv = db.insert_conversation({"source_id": "s", "ext_id": "x"})
        db.insert_message(conv, "user", 1, "python sort list")
        db.insert_message(conv, "assistant", 2, "boom")

        result = ConsolidationService(db, provider=FlakyProvider()).generate_embeddings()
        assert result.processed == 2
        assert result.succeeded == 1
        assert len(result.errors) == 1
        assert "socket reset" in result.errors[0].message

    def test_provider_overriding_embed_cannot_abort_run(self, db, corpus):
        class BrokenProvider(FakeEmbeddingProvider):
            def embed(self, text):
                if "tomato" in text:
                    raise RuntimeError("model crashed")
                return super().embed(text)

        result = ConsolidationService(db, provider=BrokenProvider()).generate_embeddings()
        assert result.succeeded == 4
        assert len(result.errors) == 1

    def test_blank_messages_are_skipped(self, db, fake_provider):
        conv = db.insert_conversation({"source_id": "s", "ext_id": "x"})
        db.insert_message(conv, "assistant", 1, "   ")
        result = ConsolidationService(db, provider=fake_provider).generate_embeddings()
        assert result.processed == 0
        assert fake_provider.calls == 0

    def test_cancelled_before_start(self, db, corpus, fake_provider):
        event = threading.Event()
        event.set()
        result = ConsolidationService(db, provider=fake_provider).generate_embeddings(event)
        assert result.cancelled
        assert result.processed == 0
        assert db.embeddings.count() == 0

    def test_without_provider_is_noop(self, db, corpus):
        result = ConsolidationService(db).generate_embeddings()
        assert result.processed == 0


def test_conversation_embedding_is_mean(db, corpus, fake_provider):
    service = ConsolidationService(db, provider=fake_provider)
    service.generate_embeddings()
    vector = service.conversation_embedding(corpus["a"])
    # python, sort, list from the first message; sorted, lambda from the second
    assert list(vector[:5]) == pytest.approx([0.5] * 5)
    assert service.conversation_embedding(9999) is None


class TestRelationshipGraph:
    """Tests for build_relationship_graph() and related lookups."""

    def test_graph(self, db, corpus, fake_provider):
        service = ConsolidationService(db, provider=fake_provider)
        service.generate_embeddings()
        result = service.build_relationship_graph()

        assert result.processed == 3
        assert result.succeeded == 3
        rels = db.relationships.list_all()
        assert len(rels) == 1
        rel = rels[0]
        assert {rel.conv_id_1, rel.conv_id_2} == {corpus["a"], corpus["b"]}
        assert rel.relationship_type == RelationshipType.SIMILAR
        assert rel.similarity_score == pytest.approx(1.0)
        assert set(rel.metadata["sources"]) == {corpus["sources"]["claude"], corpus["sources"]["chatgpt"]}

    def test_graph_is_idempotent(self, db, corpus, fake_provider):
        service = ConsolidationService(db, provider=fake_provider)
        service.generate_embeddings()
        service.build_relationship_graph()
        service.build_relationship_graph()
        assert db.relationships.count() == 1

    def test_related_band(self, db, fake_provider):
        a = db.insert_conversation({"source_id": "s", "ext_id": "a"})
        db.insert_message(a, "user", 1, "rust borrow")
        b = db.insert_conversation({"source_id": "s", "ext_id": "b"})
        db.insert_message(b, "user", 1, "rust borrow checker")

        service = ConsolidationService(db, provider=fake_provider)
        service.generate_embeddings()
        related = service.find_related(a)

        assert len(related) == 1
        # cos([1,1,0], [1,1,1]) = 2 / (sqrt(2) * sqrt(3))
        assert related[0].similarity_score == pytest.approx(0.8165, abs=1e-4)
        assert related[0].relationship_type == RelationshipType.RELATED
        assert service.find_related(a, threshold=0.9) == []

    def test_get_related_computes_when_missing(self, db, corpus, fake_provider):
        service = ConsolidationService(db, provider=fake_provider)
        service.generate_embeddings()
        assert db.relationships.count() == 0

        related = service.get_related(corpus["b"])
        assert [r.other(corpus["b"]) for r in related] == [corpus["a"]]
        assert db.relationships.count() == 1
        assert service.get_related(corpus["c"]) == []

    def test_get_related_filters_stored_edges(self, db, corpus):
        db.insert_relationship(corpus["a"], corpus["b"], "related", 0.75)
        service = ConsolidationService(db)
        assert len(service.get_related(corpus["a"], threshold=0.7)) == 1
        assert service.get_related(corpus["a"], threshold=0.8) == []

    def test_cancelled_graph(self, db, corpus, fake_provider):
        service = ConsolidationService(db, provider=fake_provider)
        service.generate_embeddings()
        event = threading.Event()
        event.set()
        result = service.build_relationship_graph(cancel_event=event)
        assert result.cancelled
        assert result.processed == 0


class TestConsolidate:
    """Tests for consolidate() and the full pipeline."""

    def test_bundles(self, db, corpus, fake_provider):
        service = ConsolidationService(db, provider=fake_provider)
        outcome = service.build_master_database()

        assert not outcome.cancelled
        assert outcome.embeddings.succeeded == 5
        bundles = outcome.bundles
        assert [b.id for b in bundles] == [f"consolidated-{corpus['a']}", f"consolidated-{corpus['c']}"]

        merged, single = bundles
        assert merged.title == "Sorting in Python"
        assert merged.conversation_ids == [corpus["a"], corpus["b"]]
        assert merged.related_conversations == [corpus["b"]]
        assert merged.sources == [corpus["sources"]["claude"], corpus["sources"]["chatgpt"]]
        assert [m.created_at for m in merged.messages] == [900, 950, 1000, 1100]
        assert {m.vendor.value for m in merged.messages} == {"claude", "chatgpt"}
        assert merged.started_at == 900
        assert merged.updated_at == 1100
        assert merged.topics == ["lambda", "list", "python", "sort", "sorted"]

        assert single.title == "Untitled Conversation"
        assert single.conversation_ids == [corpus["c"]]
        assert single.related_conversations == []

    def test_each_message_in_one_bundle(self, db, corpus, fake_provider):
        bundles = ConsolidationService(db, provider=fake_provider).build_master_database().bundles
        message_ids = [m.message_id for b in bundles for m in b.messages]
        assert len(message_ids) == len(set(message_ids)) == db.count_messages()

    def test_topics_are_persisted(self, db, corpus, fake_provider):
        ConsolidationService(db, provider=fake_provider).build_master_database()
        python = db.topics.get_by_name("python")
        assert python is not None
        counts = db.topics.get_counts()
        assert counts["python"] == 2

        first_message = db.get_conversation_messages(corpus["a"])[0]
        links = {l.topic_id: l.relevance for l in db.topics.get_for_message(first_message.id)}
        assert links[python.id] == pytest.approx(0.5)

    def test_conversation_without_embeddings_gets_own_bundle(self, db, corpus):
        bundles = ConsolidationService(db).consolidate()
        assert len(bundles) == 3
        assert all(len(b.conversation_ids) == 1 for b in bundles)

    def test_cancelled_master_build(self, db, corpus, fake_provider):
        event = threading.Event()
        event.set()
        outcome = ConsolidationService(db, provider=fake_provider).build_master_database(cancel_event=event)
        assert outcome.cancelled
        assert outcome.bundles == []

    def test_rebuild_reproduces_relationships(self, db, corpus, fake_provider):
        def snapshot():
            return sorted(
                (r.conv_id_1, r.conv_id_2, r.relationship_type.value, r.similarity_score)
                for r in db.relationships.list_all()
            )

        service = ConsolidationService(db, provider=fake_provider)
        service.build_master_database()
        before = snapshot()

        outcome = service.rebuild()
        after = snapshot()

        assert outcome.embeddings.processed == 5
        assert db.count_messages() == 5
        assert [r[:3] for r in after] == [r[:3] for r in before]
        assert [r[3] for r in after] == pytest.approx([r[3] for r in before])

    def test_bundle_messages_interleave_by_timestamp(self, db, fake_provider):
        claude = db.add_source("claude", "/exports/claude.json")
        grok = db.add_source("grok", "/exports/grok.json")
        a = db.insert_conversation({"source_id": claude, "ext_id": "a", "title": "Sorting", "updated_at": 20})
        db.insert_message(a, "user", 1000, "python sort list")
        db.insert_message(a, "assistant", 1200, "sorted lambda")
        b = db.insert_conversation({"source_id": grok, "ext_id": "b", "title": "Sorting again", "updated_at": 10})
        db.insert_message(b, "user", 1100, "python sort list")
        db.insert_message(b, "assistant", 1300, "sorted lambda")

        bundles = ConsolidationService(db, provider=fake_provider).build_master_database().bundles

        assert len(bundles) == 1
        messages = bundles[0].messages
        assert [m.created_at for m in messages] == [1000, 1100, 1200, 1300]
        assert [m.vendor.value for m in messages] == ["claude", "grok", "claude", "grok"]

    def test_cancel_stops_related_scan(self, db, fake_provider):
        for i in range(30):
            conv = db.insert_conversation({"source_id": "s", "ext_id": str(i), "updated_at": i})
            db.insert_message(conv, "user", i, "python sort list")
        service = ConsolidationService(db, provider=fake_provider)
        service.generate_embeddings()

        event = threading.Event()
        calls = []

        def compare(a, b):
            calls.append((a, b))
            event.set()
            return 1.0

        with patch.object(consolidation, "cosine_similarity", side_effect=compare):
            bundles = service.consolidate(cancel_event=event)

        assert len(calls) == 1
        assert bundles == []
        assert db.relationships.count() == 1
