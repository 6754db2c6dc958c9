"""Gemini (Google Takeout) transformer."""

import logging
from typing import List, Optional

from chatweave.core.models import MessageRole, NormalizedRecord
from chatweave.core.source_schemas.gemini import GeminiAuthor, GeminiConversation, GeminiEvent
from chatweave.transformers.base import BaseTransformer, to_epoch_ms

logger = logging.getLogger(__name__)

_ROLE_MAP = {
    GeminiAuthor.USER: MessageRole.USER,
    GeminiAuthor.MODEL: MessageRole.ASSISTANT,
    GeminiAuthor.SYSTEM: MessageRole.SYSTEM,
}


def event_text(event: GeminiEvent) -> str:
    """Text of an event, from ``text`` or its parts."""
    if event.text and event.text.strip():
        return event.text.strip()
    return "\n".join(p.text for p in event.parts if p.text).strip()


class GeminiTransformer(BaseTransformer):
    """Transformer for Gemini Takeout conversation objects."""

    schema = GeminiConversation

    @property
    def source_name(self) -> str:
        return "gemini"

    def _records(self, parsed: GeminiConversation, source_id: str, raw_path: Optional[str]) -> List[NormalizedRecord]:
        conversation_ts = to_epoch_ms(parsed.created_time)
        if conversation_ts is None:
            raise self._fail(f"invalid createdTime {parsed.created_time!r}", parsed.conversation_id)

        records = []
        for event in parsed.events:
            text = event_text(event)
            if not text:
                continue
            created_at = to_epoch_ms(event.created_time)
            records.append(
                self._record(
                    source_id=source_id,
                    conversation_id=parsed.conversation_id,
                    role=_ROLE_MAP[event.author].value,
                    created_at=created_at if created_at is not None else conversation_ts,
                    title=parsed.title,
                    text=text,
                    raw_path=raw_path,
                )
            )
        return records
