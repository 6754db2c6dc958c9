"""
Search API routes.
"""

import re
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from chatweave.api.deps import get_db, get_embedding_provider
from chatweave.api.schemas import SearchHit, SearchResponse
from chatweave.core.db import Database
from chatweave.core.db.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from chatweave.core.errors import EmbeddingError
from chatweave.core.ranking import ALL_VENDORS, ANY_ROLE, ScoredDocument, SearchFacets
from chatweave.services.embeddings import EmbeddingProvider
from chatweave.services.search import (
    DEFAULT_KEYWORD_WEIGHT,
    DEFAULT_VECTOR_WEIGHT,
    SearchService,
    SearchStats,
)

router = APIRouter()

SNIPPET_CONTEXT = 80


def make_snippet(text: Optional[str], query: str, use_regex: bool = False) -> str:
    """
    Cut a short excerpt of text around the first match of the query.

    Falls back to the start of the text when nothing matches.
    """
    if not text:
        return ""
    match = None
    if use_regex:
        try:
            match = re.search(query, text, re.IGNORECASE)
        except re.error:
            match = None
    else:
        for token in query.split():
            match = re.search(r"\b" + re.escape(token) + r"\b", text, re.IGNORECASE)
            if match:
                break
    if match is None:
        start, end = 0, SNIPPET_CONTEXT * 2
    else:
        start = max(0, match.start() - SNIPPET_CONTEXT)
        end = match.end() + SNIPPET_CONTEXT
    snippet = text[start:end].replace("\n", " ").strip()
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet


def _hit(item: ScoredDocument, query: str, use_regex: bool) -> SearchHit:
    doc = item.doc
    return SearchHit(
        id=doc.id,
        conversation_id=doc.conversation_id,
        title=doc.title,
        role=doc.role,
        vendor=doc.vendor,
        source_id=doc.source_id,
        date=doc.date,
        score=item.score,
        snippet=make_snippet(doc.body, query, use_regex),
    )


@router.get("/search", response_model=SearchResponse)
def search(
    q: str = Query("", description="Keywords, or a regular expression with regex=true"),
    regex: bool = Query(False),
    mode: str = Query("keyword", pattern="^(keyword|semantic|hybrid)$"),
    alpha: float = Query(DEFAULT_KEYWORD_WEIGHT, ge=0, le=1, description="Hybrid keyword weight"),
    beta: float = Query(DEFAULT_VECTOR_WEIGHT, ge=0, le=1, description="Hybrid vector weight"),
    vendor: str = Query(ALL_VENDORS),
    role: str = Query(ANY_ROLE),
    date_from: Optional[int] = Query(None, ge=0, description="Epoch ms"),
    date_to: Optional[int] = Query(None, ge=0, description="Epoch ms"),
    source_ids: Optional[List[str]] = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Database = Depends(get_db),
    provider: EmbeddingProvider = Depends(get_embedding_provider),
):
    """
    Search messages.

    Parameters
    ----------
    q : str
        Query; empty returns the filtered messages unranked
    regex : bool
        Treat q as a case-insensitive regular expression (keyword mode)
    mode : str
        keyword, semantic (embedding similarity) or hybrid (both blended)
    alpha, beta : float
        Keyword and vector weights of hybrid mode
    vendor, role : str
        Facets ('all' / 'any' disable them)
    date_from, date_to : int, optional
        Date bounds in epoch ms
    source_ids : List[str], optional
        Restrict to these sources
    limit : int
        Maximum results
    """
    facets = SearchFacets(
        vendor=vendor,
        role=role,
        date_from=date_from,
        date_to=date_to,
        source_ids=set(source_ids) if source_ids else None,
    )
    service = SearchService(db, provider=provider)
    try:
        if mode == "semantic":
            results = service.semantic_search(q, facets=facets, limit=limit)
        elif mode == "hybrid":
            results = service.hybrid_search(q, facets=facets, alpha=alpha, beta=beta, limit=limit)
        else:
            results = service.search(q, facets=facets, use_regex=regex, limit=limit)
    except EmbeddingError as e:
        raise HTTPException(status_code=503, detail=f"Embedding provider unavailable: {e}") from e
    return SearchResponse(
        query=q,
        mode=mode,
        regex=regex,
        results=[_hit(item, q, regex) for item in results],
        count=len(results),
    )


@router.get("/search/stats", response_model=SearchStats)
def search_stats(
    q: str = Query(..., min_length=1),
    regex: bool = Query(False),
    db: Database = Depends(get_db),
):
    """Match statistics for a query."""
    return SearchService(db).search_stats(q, use_regex=regex)


@router.get("/search/suggestions")
def suggestions(limit: int = Query(10, ge=1, le=100), db: Database = Depends(get_db)):
    """Most frequent terms in the corpus."""
    return [{"term": term, "count": count} for term, count in SearchService(db).suggestions(limit)]
