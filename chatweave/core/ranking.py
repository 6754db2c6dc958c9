"""
Ranking engine for chat documents.

Scores documents against a keyword or regex query with weighted fields
and a recency boost, after facet filters have been applied. Everything
here is a pure in-memory scan; nothing depends on the store.
"""

import logging
import re
import time
from typing import Iterable, List, Optional, Sequence, Set

from pydantic import BaseModel, ConfigDict, Field

from chatweave.core.db.constants import (
    BODY_WEIGHT,
    MS_PER_DAY,
    RECENCY_MAX_BOOST,
    RECENCY_WINDOW_DAYS,
    SYSTEM_WEIGHT,
    TITLE_WEIGHT,
    TOOL_WEIGHT,
)
from chatweave.core.models import Conversation, Message, MessageRole

logger = logging.getLogger(__name__)

ALL_VENDORS = "all"
ANY_ROLE = "any"


class SearchDoc(BaseModel):
    """A searchable document (one message or one whole conversation)."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: Optional[str] = None
    system: Optional[str] = None
    tool_json: Optional[str] = None
    body: Optional[str] = None
    vendor: Optional[str] = None
    date: Optional[int] = Field(None, description="Epoch ms")
    conversation_id: Optional[int] = None
    role: Optional[str] = None
    source_id: Optional[str] = None


class SearchFacets(BaseModel):
    """
    Structured filters applied before scoring.

    ``vendor="all"`` and ``role="any"`` disable those filters. Documents
    without a date are never excluded by the date bounds.
    """

    vendor: Optional[str] = ALL_VENDORS
    role: Optional[str] = ANY_ROLE
    date_from: Optional[int] = None
    date_to: Optional[int] = None
    source_ids: Optional[Set[str]] = None


class ScoredDocument(BaseModel):
    """A document that matched, with its final score."""

    model_config = ConfigDict(frozen=True)

    doc: SearchDoc
    score: float


def tokenize_query(query: str) -> List[str]:
    """Split a keyword query on whitespace and lower-case the tokens."""
    return [t.lower() for t in (query or "").split() if t]


def recency_boost(date: Optional[int], now: int) -> float:
    """
    Linear recency factor.

    1 for a document dated now, 0 at or beyond 180 days old. Only the
    lower bound is clamped, so future dates score above 1.
    """
    if date is None:
        return 0.0
    age_days = (now - date) / MS_PER_DAY
    return max(0.0, 1.0 - age_days / RECENCY_WINDOW_DAYS)


def _apply_recency(raw: float, date: Optional[int], now: int) -> float:
    if raw <= 0:
        return raw
    return raw * (1.0 + RECENCY_MAX_BOOST * recency_boost(date, now))


def _weighted_fields(doc: SearchDoc):
    return (
        (doc.title, TITLE_WEIGHT),
        (doc.system, SYSTEM_WEIGHT),
        (doc.tool_json, TOOL_WEIGHT),
        (doc.body, BODY_WEIGHT),
    )


def _token_patterns(tokens: Sequence[str]) -> List[re.Pattern]:
    return [re.compile(r"\b" + re.escape(t) + r"\b") for t in tokens if t]


def _keyword_raw(doc: SearchDoc, patterns: Sequence[re.Pattern]) -> float:
    total = 0.0
    for text, weight in _weighted_fields(doc):
        if not text:
            continue
        low = text.lower()
        for pattern in patterns:
            hits = len(pattern.findall(low))
            if hits:
                total += hits * weight
    return total


def score(doc: SearchDoc, tokens: Sequence[str], now: Optional[int] = None) -> float:
    """
    Keyword score of a document.

    Each whole-word occurrence of a token in a field adds that field's
    weight; the sum is then multiplied by the recency factor.

    Parameters
    ----------
    doc : SearchDoc
        Document to score
    tokens : Sequence[str]
        Lower-cased query tokens (see tokenize_query)
    now : int, optional
        Reference time in epoch ms; defaults to the current time

    Returns
    -------
    float
        Score, 0 when nothing matched
    """
    now = int(time.time() * 1000) if now is None else now
    return _apply_recency(_keyword_raw(doc, _token_patterns(tokens)), doc.date, now)


def _regex_raw(doc: SearchDoc, compiled: re.Pattern) -> float:
    total = 0.0
    for text, weight in _weighted_fields(doc):
        if compiled.search(text or ""):
            total += weight
    return total


def regex_score(doc: SearchDoc, pattern: str, now: Optional[int] = None) -> float:
    """
    Regex score of a document.

    The pattern is compiled case-insensitively; each field that matches
    contributes its weight once. An invalid pattern scores 0.
    """
    try:
        compiled = re.compile(pattern, re.IGNORECASE)
    except re.error:
        return 0.0
    now = int(time.time() * 1000) if now is None else now
    return _apply_recency(_regex_raw(doc, compiled), doc.date, now)


def passes_facets(doc: SearchDoc, facets: Optional[SearchFacets]) -> bool:
    """Whether a document survives the facet filters."""
    if facets is None:
        return True
    if facets.vendor and facets.vendor != ALL_VENDORS and doc.vendor != facets.vendor:
        return False
    if facets.role and facets.role != ANY_ROLE and doc.role != facets.role:
        return False
    if doc.date is not None:
        if facets.date_from is not None and doc.date < facets.date_from:
            return False
        if facets.date_to is not None and doc.date > facets.date_to:
            return False
    if facets.source_ids and doc.source_id not in facets.source_ids:
        return False
    return True


def rank(
    docs: Iterable[SearchDoc],
    query: str,
    facets: Optional[SearchFacets] = None,
    use_regex: bool = False,
    now: Optional[int] = None,
) -> List[ScoredDocument]:
    """
    Filter, score and order documents.

    Parameters
    ----------
    docs : Iterable[SearchDoc]
        Candidate documents, in their natural order
    query : str
        Keyword query, or a regular expression when use_regex is set
    facets : SearchFacets, optional
        Filters applied before scoring
    use_regex : bool
        Treat the query as one case-insensitive regular expression
    now : int, optional
        Reference time in epoch ms

    Returns
    -------
    List[ScoredDocument]
        Documents with score > 0, best first; ties keep input order
    """
    now = int(time.time() * 1000) if now is None else now

    if use_regex:
        try:
            compiled = re.compile(query, re.IGNORECASE)
        except re.error as e:
            logger.info("Invalid regex query %r: %s", query, e)
            return []

        def raw_score(doc: SearchDoc) -> float:
            return _regex_raw(doc, compiled)

    else:
        patterns = _token_patterns(tokenize_query(query))

        def raw_score(doc: SearchDoc) -> float:
            return _keyword_raw(doc, patterns)

    scored = []
    for doc in docs:
        if not passes_facets(doc, facets):
            continue
        s = _apply_recency(raw_score(doc), doc.date, now)
        if s > 0:
            scored.append(ScoredDocument(doc=doc, score=s))

    # list.sort is stable, so equal scores keep input order
    scored.sort(key=lambda item: item.score, reverse=True)
    return scored


def message_to_search_doc(
    message: Message,
    title: Optional[str] = None,
    vendor: Optional[str] = None,
    source_id: Optional[str] = None,
) -> SearchDoc:
    """Build the search document of a single message."""
    role = message.role.value if isinstance(message.role, MessageRole) else message.role
    return SearchDoc(
        id=str(message.id),
        title=title,
        system=message.text if role == MessageRole.SYSTEM.value else "",
        tool_json=(message.tool_json or "") if role == MessageRole.TOOL.value else "",
        body=message.text or "",
        vendor=vendor,
        date=message.ts,
        conversation_id=message.conversation_id,
        role=role,
        source_id=source_id,
    )


def conversation_to_search_doc(
    conversation: Conversation,
    messages: Sequence[Message],
    vendor: Optional[str] = None,
) -> SearchDoc:
    """Build the search document of a whole conversation."""
    system = [m.text or "" for m in messages if m.role == MessageRole.SYSTEM]
    tools = [m.tool_json or "" for m in messages if m.role == MessageRole.TOOL]
    return SearchDoc(
        id=str(conversation.id),
        title=conversation.title,
        system="\n".join(system),
        tool_json="\n".join(tools),
        body="\n".join(m.text or "" for m in messages),
        vendor=vendor,
        date=conversation.updated_at,
        conversation_id=conversation.id,
        source_id=conversation.source_id,
    )
