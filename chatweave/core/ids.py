"""
Stable identifiers for vendor-proof deduplication.

Ids are derived from vendor, native ids, timestamps and content so that
re-importing the same export always yields the same keys, even when the
vendor's own id is missing or unstable. The mixing hash is FNV-1a over
two interleaved 32-bit lanes, concatenated to 64 bits: collisions only
need to be rare across a personal corpus, not cryptographically hard.
"""

import hashlib
import json
import re
from typing import Any, Iterable, Optional, Sequence, Tuple

import Levenshtein

FNV32_OFFSET = 0x811C9DC5
FNV32_PRIME = 0x01000193
MASK32 = 0xFFFFFFFF

# Characters of normalized text that feed a message id
MESSAGE_PREFIX_CHARS = 256

# Soft near-duplicate heuristic
DUPLICATE_WINDOW_MS = 60_000
DUPLICATE_COMPARE_CHARS = 100
DUPLICATE_SIMILARITY = 0.8

_WHITESPACE_RE = re.compile(r"\s+")


def fnv1a64(text: str) -> str:
    """
    Hash a string to 16 hex digits.

    Parameters
    ----------
    text : str
        Input string

    Returns
    -------
    str
        Fixed-width lowercase hex digest (64 bits)
    """
    h1 = FNV32_OFFSET
    h2 = FNV32_OFFSET
    for ch in text:
        c = ord(ch)
        h1 = ((h1 ^ c) * FNV32_PRIME) & MASK32
        h2 = ((h2 ^ (c << 1)) * FNV32_PRIME) & MASK32
    return f"{(h1 << 32) | h2:016x}"


def normalize_text(text: Optional[str]) -> str:
    """Normalize text so hashes don't churn on whitespace or case."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text.replace("\r\n", "\n")).strip().lower()


def _canon_attachments(attachments: Optional[Sequence[Any]]) -> str:
    if not attachments:
        return ""
    names = []
    for att in attachments:
        if isinstance(att, str):
            names.append(att)
        elif isinstance(att, dict) and (att.get("name") or att.get("filename")):
            names.append(str(att.get("name") or att.get("filename")))
        else:
            names.append(json.dumps(att, sort_keys=True, default=str))
    return "|".join(sorted(names))


def conversation_id(vendor: str, native_id: Optional[str], title: Optional[str]) -> str:
    """
    Stable conversation id: ``vendor:conv:<hex>``.

    The title is part of the identity, so a conversation renamed between
    two exports hashes to a different id.
    """
    base = f"{vendor}::{native_id or ''}::{title or ''}"
    return f"{vendor}:conv:{fnv1a64(base)}"


def message_id(
    vendor: str,
    conversation_id: str,
    role: str,
    timestamp: Optional[int],
    text: Optional[str],
    tool_name: Optional[str] = None,
    attachments: Optional[Sequence[Any]] = None,
) -> str:
    """
    Stable message id: ``vendor:<hex>``.

    Only the first 256 characters of the normalized text are hashed, which
    bounds the cost on very long messages.

    Parameters
    ----------
    vendor : str
        Vendor tag (chatgpt, claude, gemini, grok)
    conversation_id : str
        Stable conversation id (see conversation_id())
    role : str
        Message role
    timestamp : int, optional
        Epoch milliseconds
    text : str, optional
        Message text
    tool_name : str, optional
        Tool name for tool turns
    attachments : sequence, optional
        Attachment names or descriptors

    Returns
    -------
    str
        Vendor-prefixed hex id
    """
    prefix = normalize_text(text)[:MESSAGE_PREFIX_CHARS]
    base = "::".join(
        [
            vendor,
            conversation_id or "NA",
            role,
            str(timestamp or 0),
            tool_name or "",
            _canon_attachments(attachments),
            prefix,
        ]
    )
    return f"{vendor}:{fnv1a64(base)}"


def message_hash(role: str, timestamp: Optional[int], text: Optional[str]) -> str:
    """Per-message dedup hash over role, timestamp and full normalized text."""
    return fnv1a64(f"{role}::{timestamp or 0}::{normalize_text(text)}")


def source_id(vendor: str, root: str) -> str:
    """Stable source id: ``vendor:src:<hex>``."""
    return f"{vendor}:src:{fnv1a64(f'{vendor}::{root}')}"


def vendor_of(stable_id: str) -> str:
    """Extract the vendor prefix from any stable id."""
    return stable_id.split(":", 1)[0]


def content_hash(messages: Iterable[Tuple[str, str]]) -> str:
    """
    SHA-256 over role-tagged message text.

    Parameters
    ----------
    messages : Iterable[Tuple[str, str]]
        (role, text) pairs in conversation order

    Returns
    -------
    str
        Hex digest
    """
    digest = hashlib.sha256()
    for role, text in messages:
        digest.update(f"{role}: {text or ''}\n".encode("utf-8"))
    return digest.hexdigest()


def text_similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity in [0, 1]."""
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - Levenshtein.distance(a, b)) / longer


def is_likely_duplicate(
    role_a: str,
    ts_a: Optional[int],
    text_a: Optional[str],
    role_b: str,
    ts_b: Optional[int],
    text_b: Optional[str],
) -> bool:
    """
    Soft near-duplicate signal for de-noising; not a storage constraint.

    Same role, timestamps within 60 seconds and more than 0.8 similarity
    over the first 100 characters.
    """
    if role_a != role_b:
        return False
    if abs((ts_a or 0) - (ts_b or 0)) > DUPLICATE_WINDOW_MS:
        return False
    head_a = (text_a or "")[:DUPLICATE_COMPARE_CHARS]
    head_b = (text_b or "")[:DUPLICATE_COMPARE_CHARS]
    return text_similarity(head_a, head_b) > DUPLICATE_SIMILARITY
