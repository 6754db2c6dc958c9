"""
Search service for querying the chat corpus.

Builds search documents from the store and runs them through the
ranking engine:
- Message search (one document per message)
- Conversation search (one document per conversation)
- Semantic search (query embedding against stored message embeddings)
- Hybrid search (weighted blend of normalized keyword and vector scores)
- Term suggestions and per-query statistics
"""

import logging
import re
from collections import Counter
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from chatweave.core import ids
from chatweave.core.db import Database
from chatweave.core.errors import EmbeddingError
from chatweave.core.ranking import (
    ScoredDocument,
    SearchDoc,
    SearchFacets,
    conversation_to_search_doc,
    message_to_search_doc,
    passes_facets,
    rank,
    score as keyword_score,
    tokenize_query,
)
from chatweave.services.embeddings import EmbeddingProvider, cosine_similarity

logger = logging.getLogger(__name__)

_SUGGESTION_WORD = re.compile(r"\b\w{3,}\b")

DEFAULT_KEYWORD_WEIGHT = 0.5
DEFAULT_VECTOR_WEIGHT = 0.5


class SearchStats(BaseModel):
    """Summary of how a query matched the corpus."""

    total: int = 0
    matching: int = 0
    average_score: float = 0.0
    vendors: Dict[str, int] = Field(default_factory=dict)
    date_from: Optional[int] = None
    date_to: Optional[int] = None


class SearchService:
    """
    Provides search functionality over the stored corpus.

    Documents are rebuilt from the store on every call, so results
    always reflect the current working copy.
    """

    def __init__(self, db: Database, provider: Optional[EmbeddingProvider] = None):
        """
        Initialize search service.

        Parameters
        ----------
        db : Database
            Open store
        provider : EmbeddingProvider, optional
            Embeds queries for semantic and hybrid search; keyword search
            works without one
        """
        self.db = db
        self.provider = provider

    def _vendors(self) -> Dict[str, str]:
        return {s.id: s.vendor.value for s in self.db.list_sources()}

    def message_docs(self) -> List[SearchDoc]:
        """One search document per stored message, newest conversations first."""
        vendors = self._vendors()
        docs = []
        for conversation in self.db.select_conversations():
            vendor = vendors.get(conversation.source_id) or ids.vendor_of(conversation.stable_id or "") or None
            for message in self.db.get_conversation_messages(conversation.id):
                docs.append(
                    message_to_search_doc(
                        message,
                        title=conversation.title,
                        vendor=vendor,
                        source_id=conversation.source_id,
                    )
                )
        return docs

    def conversation_docs(self) -> List[SearchDoc]:
        """One search document per stored conversation."""
        vendors = self._vendors()
        docs = []
        for conversation in self.db.select_conversations():
            vendor = vendors.get(conversation.source_id) or ids.vendor_of(conversation.stable_id or "") or None
            messages = self.db.get_conversation_messages(conversation.id)
            docs.append(conversation_to_search_doc(conversation, messages, vendor=vendor))
        return docs

    @staticmethod
    def _run(
        docs: List[SearchDoc],
        query: str,
        facets: Optional[SearchFacets],
        use_regex: bool,
        limit: Optional[int],
    ) -> List[ScoredDocument]:
        if not (query or "").strip():
            # No query: filtered documents in store order, unscored
            results = [ScoredDocument(doc=d, score=0.0) for d in docs if passes_facets(d, facets)]
        else:
            results = rank(docs, query, facets=facets, use_regex=use_regex)
        if limit is not None:
            results = results[:limit]
        return results

    def search_messages(
        self,
        query: str,
        facets: Optional[SearchFacets] = None,
        use_regex: bool = False,
        limit: Optional[int] = None,
    ) -> List[ScoredDocument]:
        """
        Search individual messages.

        Parameters
        ----------
        query : str
            Keyword query, or a regular expression when use_regex is set
        facets : SearchFacets, optional
            Filters applied before scoring
        use_regex : bool
            Treat the query as a regular expression
        limit : int, optional
            Maximum number of results

        Returns
        -------
        List[ScoredDocument]
            Matching messages, best first
        """
        return self._run(self.message_docs(), query, facets, use_regex, limit)

    def search_conversations(
        self,
        query: str,
        facets: Optional[SearchFacets] = None,
        use_regex: bool = False,
        limit: Optional[int] = None,
    ) -> List[ScoredDocument]:
        """Search whole conversations; same arguments as search_messages."""
        return self._run(self.conversation_docs(), query, facets, use_regex, limit)

    def search(
        self,
        query: str,
        facets: Optional[SearchFacets] = None,
        use_regex: bool = False,
        limit: Optional[int] = None,
    ) -> List[ScoredDocument]:
        """Message search, the default at the query boundary."""
        return self.search_messages(query, facets=facets, use_regex=use_regex, limit=limit)

    def _filtered_message_docs(self, facets: Optional[SearchFacets]) -> List[SearchDoc]:
        return [doc for doc in self.message_docs() if passes_facets(doc, facets)]

    def _vector_candidates(
        self, query: str, docs: List[SearchDoc]
    ) -> List[Tuple[SearchDoc, float]]:
        """Embedded documents paired with their cosine similarity to the query."""
        if self.provider is None:
            raise EmbeddingError("No embedding provider configured for semantic search")
        query_vec = self.provider.embed(query)
        embeddings = self.db.get_all_embeddings(self.provider.model_name)

        candidates = []
        for doc in docs:
            embedding = embeddings.get(int(doc.id))
            if embedding is None:
                continue
            try:
                similarity = cosine_similarity(query_vec, embedding.vector)
            except ValueError as e:
                logger.debug("Skipping message %s: %s", doc.id, e)
                continue
            candidates.append((doc, similarity))
        return candidates

    def semantic_search(
        self,
        query: str,
        facets: Optional[SearchFacets] = None,
        limit: Optional[int] = None,
    ) -> List[ScoredDocument]:
        """
        Rank embedded messages by cosine similarity to the query.

        Only messages embedded with the provider's model take part, and
        only positive similarities are returned.

        Parameters
        ----------
        query : str
            Free text; a blank query returns no results
        facets : SearchFacets, optional
            Filters applied before scoring
        limit : int, optional
            Maximum number of results

        Returns
        -------
        List[ScoredDocument]
            Messages, most similar first

        Raises
        ------
        EmbeddingError
            If there is no provider or the query cannot be embedded.
        """
        if not (query or "").strip():
            return []
        results = [
            ScoredDocument(doc=doc, score=similarity)
            for doc, similarity in self._vector_candidates(query, self._filtered_message_docs(facets))
            if similarity > 0
        ]
        results.sort(key=lambda r: -r.score)
        return results[:limit] if limit is not None else results

    def hybrid_search(
        self,
        query: str,
        facets: Optional[SearchFacets] = None,
        alpha: float = DEFAULT_KEYWORD_WEIGHT,
        beta: float = DEFAULT_VECTOR_WEIGHT,
        limit: Optional[int] = None,
        now: Optional[int] = None,
    ) -> List[ScoredDocument]:
        """
        Blend keyword and vector relevance.

        ``score = alpha * keyword / max_keyword + beta * (cosine + 1) / 2``
        with alpha and beta rescaled to sum to 1. The keyword maximum is
        taken over the filtered documents and floored at 1. Messages
        without an embedding are left out.

        Parameters
        ----------
        query : str
            Keyword query, also embedded for the vector part
        facets : SearchFacets, optional
            Filters applied before scoring
        alpha : float
            Weight of the keyword score
        beta : float
            Weight of the vector score
        limit : int, optional
            Maximum number of results
        now : int, optional
            Reference time for the recency boost, epoch ms

        Returns
        -------
        List[ScoredDocument]
            Messages, best blended score first

        Raises
        ------
        EmbeddingError
            If there is no provider or the query cannot be embedded.
        """
        if not (query or "").strip():
            return []
        total = alpha + beta
        alpha, beta = (alpha / total, beta / total) if total > 0 else (0.5, 0.5)

        docs = self._filtered_message_docs(facets)
        candidates = self._vector_candidates(query, docs)
        tokens = tokenize_query(query)
        # documents without embeddings still set the keyword scale
        keyword = {doc.id: keyword_score(doc, tokens, now) for doc in docs}
        top = max(list(keyword.values()) + [1.0])

        results = []
        for doc, similarity in candidates:
            blended = alpha * keyword[doc.id] / top + beta * (similarity + 1) / 2
            if blended > 0:
                results.append(ScoredDocument(doc=doc, score=blended))
        results.sort(key=lambda r: -r.score)
        return results[:limit] if limit is not None else results

    def suggestions(self, limit: int = 10) -> List[Tuple[str, int]]:
        """
        Most frequent terms in the corpus.

        Returns
        -------
        List[Tuple[str, int]]
            (term, count) pairs, most frequent first, ties alphabetical
        """
        counts: Counter = Counter()
        for doc in self.message_docs():
            counts.update(_SUGGESTION_WORD.findall((doc.body or "").lower()))
        for conversation in self.db.select_conversations():
            counts.update(_SUGGESTION_WORD.findall((conversation.title or "").lower()))
        ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return ordered[:limit]

    def search_stats(self, query: str, use_regex: bool = False) -> SearchStats:
        """
        Statistics for a message query.

        Parameters
        ----------
        query : str
            Keyword query or regular expression
        use_regex : bool
            Treat the query as a regular expression

        Returns
        -------
        SearchStats
            Corpus size, match count, mean score, vendor counts and the
            date range of the matches
        """
        docs = self.message_docs()
        results = self._run(docs, query, None, use_regex, None)
        stats = SearchStats(total=len(docs), matching=len(results))
        if not results:
            return stats

        stats.average_score = sum(r.score for r in results) / len(results)
        vendors: Counter = Counter(r.doc.vendor or "unknown" for r in results)
        stats.vendors = dict(vendors)
        dates = [r.doc.date for r in results if r.doc.date is not None]
        if dates:
            stats.date_from = min(dates)
            stats.date_to = max(dates)
        logger.debug("Search stats for %r: %d/%d matching", query, stats.matching, stats.total)
        return stats
