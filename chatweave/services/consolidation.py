"""
Consolidation service.

Finds conversations that are about the same thing, possibly imported
from different vendors, and folds them into consolidated bundles:

1. embed every message (stored per model, rebuildable)
2. conversation embedding = mean of its message vectors
3. compare every conversation pair by cosine similarity and classify
   the edge (similar >= 0.9, related >= 0.8, related down to the
   threshold, nothing below it)
4. merge each unvisited conversation with its direct neighbours into a
   bundle with extracted topics

Long loops check a ``threading.Event`` between units of work; a
cancelled run leaves partial derived data, which is a valid state.
"""

import logging
import re
import threading
import time
from collections import Counter
from typing import Dict, Iterable, List, Optional

import numpy as np

from chatweave.core import ids
from chatweave.core.db import Database
from chatweave.core.db.constants import (
    DEFAULT_RELATED_THRESHOLD,
    SIMILAR_THRESHOLD,
    TOPIC_MIN_WORD_LENGTH,
    TOPIC_STOP_WORDS,
    TOPICS_PER_BUNDLE,
)
from chatweave.core.models import (
    BatchResult,
    BundleMessage,
    ConsolidatedBundle,
    Conversation,
    IngestionError,
    MasterBuildResult,
    Relationship,
    RelationshipType,
    Vendor,
)
from chatweave.services.embeddings import EmbeddingProvider, cosine_similarity

logger = logging.getLogger(__name__)

_TOPIC_WORD_RE = re.compile(r"\b\w{%d,}\b" % TOPIC_MIN_WORD_LENGTH)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def classify_similarity(
    similarity: float, threshold: float = DEFAULT_RELATED_THRESHOLD
) -> Optional[RelationshipType]:
    """
    Map a cosine similarity to a relationship type.

    Returns None when the pair falls below the threshold and should not
    be recorded. FOLLOWUP and REFERENCE are never produced here.
    """
    if similarity < threshold:
        return None
    if similarity >= SIMILAR_THRESHOLD:
        return RelationshipType.SIMILAR
    # [0.8, 0.9) and the band between the threshold and 0.8 are both related
    return RelationshipType.RELATED


def _topic_words(text: Optional[str]) -> List[str]:
    return [
        w for w in _TOPIC_WORD_RE.findall((text or "").lower()) if w not in TOPIC_STOP_WORDS
    ]


def extract_topics(texts: Iterable[Optional[str]], limit: int = TOPICS_PER_BUNDLE) -> List[str]:
    """
    Most frequent words of at least four characters, minus stop words.

    Ties are broken alphabetically so the result is reproducible.

    Parameters
    ----------
    texts : Iterable[str]
        Message texts
    limit : int
        Number of topics to return

    Returns
    -------
    List[str]
        Topic words, most frequent first
    """
    counts: Counter = Counter()
    for text in texts:
        counts.update(_topic_words(text))
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [word for word, _ in ranked[:limit]]


class ConsolidationService:
    """
    Builds the relationship graph and consolidated bundles.

    Parameters
    ----------
    db : Database
        Open store
    provider : EmbeddingProvider, optional
        Embedding provider. Without one, only embeddings already stored
        are used and generate_embeddings() is a no-op.
    threshold : float
        Default minimum similarity for recording a relationship
    """

    def __init__(
        self,
        db: Database,
        provider: Optional[EmbeddingProvider] = None,
        threshold: float = DEFAULT_RELATED_THRESHOLD,
    ):
        self.db = db
        self.provider = provider
        self.threshold = threshold

    @property
    def model_name(self) -> Optional[str]:
        return self.provider.model_name if self.provider else None

    def _threshold(self, threshold: Optional[float]) -> float:
        return self.threshold if threshold is None else threshold

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def generate_embeddings(self, cancel_event: Optional[threading.Event] = None) -> BatchResult:
        """
        Embed every message that has no vector for the provider's model.

        Provider failures are logged and collected; they never abort the
        run. Blank messages are skipped.

        Returns
        -------
        BatchResult
            processed/succeeded message counts and per-message errors
        """
        result = BatchResult()
        if self.provider is None:
            logger.warning("No embedding provider configured; using stored embeddings only")
            return result

        pending = self.db.messages.list_without_embedding(self.provider.model_name)
        logger.info("Embedding %d messages with %s", len(pending), self.provider.model_name)

        for message in pending:
            if _cancelled(cancel_event):
                result.cancelled = True
                logger.info("Embedding generation cancelled after %d messages", result.processed)
                break
            if not (message.text or "").strip():
                continue

            result.processed += 1
            try:
                vector = self.provider.embed(message.text)
            except Exception as e:
                logger.error("Error generating embedding for message %d: %s", message.id, e)
                result.errors.append(
                    IngestionError(source=f"message:{message.id}", message=str(e), timestamp=_now_ms())
                )
                continue
            self.db.insert_message_embedding(message.id, vector, self.provider.model_name)
            result.succeeded += 1

            if result.processed % 100 == 0:
                logger.info("Embedded %d/%d messages", result.processed, len(pending))

        return result

    def conversation_embedding(self, conversation_id: int) -> Optional[np.ndarray]:
        """
        Mean of the stored message vectors of a conversation.

        Returns None when no message of the conversation is embedded.
        """
        embeddings = self.db.embeddings.get_for_conversation(conversation_id, self.model_name)
        if not embeddings:
            return None

        dimension = embeddings[0].dimension
        vectors = [e.vector for e in embeddings if e.dimension == dimension]
        if len(vectors) != len(embeddings):
            logger.debug(
                "Conversation %d mixes embedding dimensions; using %d-d vectors only",
                conversation_id,
                dimension,
            )
        return np.mean(np.stack(vectors).astype(np.float64), axis=0)

    def _all_conversation_embeddings(
        self, conversations: List[Conversation]
    ) -> Dict[int, np.ndarray]:
        embeddings = {}
        for conv in conversations:
            vector = self.conversation_embedding(conv.id)
            if vector is not None:
                embeddings[conv.id] = vector
        return embeddings

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def _record(
        self, a: Conversation, b: Conversation, similarity: float, threshold: float
    ) -> Optional[int]:
        rel_type = classify_similarity(similarity, threshold)
        if rel_type is None:
            return None
        low, high = (a, b) if a.id < b.id else (b, a)
        return self.db.insert_relationship(
            a.id,
            b.id,
            rel_type.value,
            similarity,
            {"sources": [low.source_id, high.source_id], "titles": [low.title, high.title]},
        )

    def find_related(
        self,
        conversation_id: int,
        threshold: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        embeddings: Optional[Dict[int, np.ndarray]] = None,
    ) -> List[Relationship]:
        """
        Compare one conversation against all others and persist the edges.

        Parameters
        ----------
        conversation_id : int
            Target conversation
        threshold : float, optional
            Minimum similarity; the service default when None
        cancel_event : threading.Event, optional
            Checked before each pair; edges recorded so far are kept
        embeddings : Dict[int, np.ndarray], optional
            Precomputed conversation embeddings; loaded from the store
            when None

        Returns
        -------
        List[Relationship]
            Stored relationships of the conversation at or above the
            threshold, most similar first
        """
        threshold = self._threshold(threshold)
        target = self.db.get_conversation(conversation_id)
        if target is None:
            return []

        conversations = self.db.select_conversations()
        if embeddings is None:
            embeddings = self._all_conversation_embeddings(conversations)
        target_vec = embeddings.get(conversation_id)
        if target_vec is None:
            logger.debug("Conversation %d has no embedded messages", conversation_id)
            return []

        for other in conversations:
            if _cancelled(cancel_event):
                logger.info("Related scan for conversation %d cancelled", conversation_id)
                break
            if other.id == conversation_id:
                continue
            other_vec = embeddings.get(other.id)
            if other_vec is None:
                continue
            try:
                similarity = cosine_similarity(target_vec, other_vec)
            except ValueError as e:
                logger.warning(
                    "Cannot compare conversations %d and %d: %s", conversation_id, other.id, e
                )
                continue
            self._record(target, other, similarity, threshold)

        return self.db.get_relationships_for(conversation_id, min_score=threshold)

    def get_related(
        self,
        conversation_id: int,
        threshold: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        embeddings: Optional[Dict[int, np.ndarray]] = None,
    ) -> List[Relationship]:
        """
        Relationships of a conversation, computing them if none are stored.

        Takes the same arguments as find_related(), which runs only when
        the conversation has no stored edges.

        Returns
        -------
        List[Relationship]
            Relationships at or above the threshold, most similar first
        """
        threshold = self._threshold(threshold)
        stored = self.db.get_relationships_for(conversation_id)
        if stored:
            return [r for r in stored if r.similarity_score >= threshold]
        return self.find_related(conversation_id, threshold, cancel_event, embeddings)

    def build_relationship_graph(
        self,
        threshold: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchResult:
        """
        Compare every unordered conversation pair once.

        Cancellation is checked before each pair.

        Returns
        -------
        BatchResult
            processed = pairs compared, succeeded = pairs compared without
            error, errors = pairs that could not be compared
        """
        threshold = self._threshold(threshold)
        result = BatchResult()
        conversations = self.db.select_conversations()
        embeddings = self._all_conversation_embeddings(conversations)
        embedded = [c for c in conversations if c.id in embeddings]
        logger.info(
            "Building relationship graph for %d of %d conversations",
            len(embedded),
            len(conversations),
        )

        recorded = 0
        for i, a in enumerate(embedded):
            for b in embedded[i + 1 :]:
                if _cancelled(cancel_event):
                    result.cancelled = True
                    logger.info("Relationship graph cancelled after %d pairs", result.processed)
                    return result
                result.processed += 1
                try:
                    similarity = cosine_similarity(embeddings[a.id], embeddings[b.id])
                except ValueError as e:
                    result.errors.append(
                        IngestionError(
                            source=f"conversations:{a.id}:{b.id}", message=str(e), timestamp=_now_ms()
                        )
                    )
                    continue
                result.succeeded += 1
                if self._record(a, b, similarity, threshold) is not None:
                    recorded += 1

        logger.info("Relationship graph: %d pairs compared, %d edges recorded", result.processed, recorded)
        return result

    # ------------------------------------------------------------------
    # Bundles
    # ------------------------------------------------------------------

    def _vendor_lookup(self) -> Dict[str, Vendor]:
        return {s.id: s.vendor for s in self.db.list_sources()}

    @staticmethod
    def _detect_vendor(source_id: str, known: Dict[str, Vendor]) -> Optional[Vendor]:
        if source_id in known:
            return known[source_id]
        try:
            return Vendor(ids.vendor_of(source_id))
        except ValueError:
            return None

    def _persist_topics(self, topics: List[str], messages: List[BundleMessage]) -> None:
        words_per_message = {m.message_id: Counter(_topic_words(m.text)) for m in messages}
        for topic in topics:
            total = sum(counts[topic] for counts in words_per_message.values())
            if total == 0:
                continue
            topic_id = self.db.insert_topic(topic)
            for message_id, counts in words_per_message.items():
                if counts[topic]:
                    self.db.insert_message_topic(message_id, topic_id, counts[topic] / total)

    def consolidate(
        self,
        threshold: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[ConsolidatedBundle]:
        """
        Fold related conversations into bundles.

        Conversations are walked most recently updated first. Each one not
        yet placed in a bundle forms a cluster with its direct neighbours
        that are not placed yet either (no transitive closure). A
        conversation without embeddings still yields its own bundle.

        Parameters
        ----------
        threshold : float, optional
            Minimum similarity for a neighbour
        cancel_event : threading.Event, optional
            Checked between conversations and between the pairs of a
            related scan; bundles completed so far are returned

        Returns
        -------
        List[ConsolidatedBundle]
            Bundles in walk order
        """
        threshold = self._threshold(threshold)
        conversations = self.db.select_conversations()
        by_id = {c.id: c for c in conversations}
        vendors = self._vendor_lookup()
        embeddings = self._all_conversation_embeddings(conversations)
        visited = set()
        bundles: List[ConsolidatedBundle] = []

        for conv in conversations:
            if _cancelled(cancel_event):
                logger.info("Consolidation cancelled after %d bundles", len(bundles))
                break
            if conv.id in visited:
                continue

            neighbours: List[int] = []
            related = self.get_related(conv.id, threshold, cancel_event, embeddings)
            if _cancelled(cancel_event):
                logger.info("Consolidation cancelled after %d bundles", len(bundles))
                break
            for rel in related:
                other = rel.other(conv.id)
                if other not in neighbours and other in by_id:
                    neighbours.append(other)

            cluster = [conv.id] + [n for n in neighbours if n not in visited]
            visited.update(cluster)

            messages: List[BundleMessage] = []
            for cid in cluster:
                member = by_id[cid]
                vendor = self._detect_vendor(member.source_id, vendors)
                for msg in self.db.get_conversation_messages(cid):
                    messages.append(
                        BundleMessage(
                            message_id=msg.id,
                            conversation_id=cid,
                            source_id=member.source_id,
                            vendor=vendor,
                            role=msg.role,
                            created_at=msg.ts,
                            title=member.title or "",
                            text=msg.text or "",
                        )
                    )
            messages.sort(key=lambda m: (m.created_at, m.message_id))

            topics = extract_topics(m.text for m in messages)
            self._persist_topics(topics, messages)

            sources: List[str] = []
            for cid in cluster:
                if by_id[cid].source_id not in sources:
                    sources.append(by_id[cid].source_id)

            if messages:
                started_at = messages[0].created_at
                updated_at = max(m.created_at for m in messages)
            else:
                started_at, updated_at = conv.started_at, conv.updated_at

            bundles.append(
                ConsolidatedBundle(
                    id=f"consolidated-{conv.id}",
                    title=conv.title or "Untitled Conversation",
                    conversation_ids=cluster,
                    sources=sources,
                    messages=messages,
                    related_conversations=neighbours,
                    topics=topics,
                    started_at=started_at,
                    updated_at=updated_at,
                )
            )

        logger.info(
            "Consolidated %d conversations into %d bundles", len(visited), len(bundles)
        )
        return bundles

    def build_master_database(
        self,
        threshold: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> MasterBuildResult:
        """
        Run the full pipeline: embeddings, relationship graph, bundles.

        Stops after the first cancelled step.
        """
        outcome = MasterBuildResult()

        outcome.embeddings = self.generate_embeddings(cancel_event)
        if outcome.embeddings.cancelled:
            outcome.cancelled = True
            return outcome

        outcome.relationships = self.build_relationship_graph(threshold, cancel_event)
        if outcome.relationships.cancelled:
            outcome.cancelled = True
            return outcome

        outcome.bundles = self.consolidate(threshold, cancel_event)
        outcome.cancelled = _cancelled(cancel_event)
        logger.info("Master database built: %d consolidated conversations", len(outcome.bundles))
        return outcome

    def rebuild(
        self,
        threshold: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> MasterBuildResult:
        """Drop all derived data and build it again from the messages."""
        self.db.clear_derived()
        return self.build_master_database(threshold, cancel_event)

