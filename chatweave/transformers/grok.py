"""
Grok transformer.

Each export item pairs a conversation header with its responses; the
responses are already linear, so no tree walking is needed.
"""

import logging
from typing import List, Optional

from chatweave.core.models import MessageRole, NormalizedRecord
from chatweave.core.source_schemas.grok import GrokConversation, GrokSender
from chatweave.transformers.base import BaseTransformer, to_epoch_ms

logger = logging.getLogger(__name__)

_ROLE_MAP = {
    GrokSender.HUMAN: MessageRole.USER,
    GrokSender.ASSISTANT: MessageRole.ASSISTANT,
    GrokSender.SYSTEM: MessageRole.SYSTEM,
}


class GrokTransformer(BaseTransformer):
    """Transformer for Grok export items."""

    schema = GrokConversation

    @property
    def source_name(self) -> str:
        return "grok"

    def _native_id(self, raw_data):
        header = raw_data.get("conversation") if isinstance(raw_data, dict) else None
        if isinstance(header, dict):
            return super()._native_id(header)
        return None

    def _records(self, parsed: GrokConversation, source_id: str, raw_path: Optional[str]) -> List[NormalizedRecord]:
        header = parsed.conversation
        conversation_ts = to_epoch_ms(header.create_time)
        if conversation_ts is None:
            raise self._fail(f"invalid create_time {header.create_time!r}", header.id)

        records = []
        for item in parsed.responses:
            body = item.response
            text = body.message.strip()
            if not text:
                continue
            created_at = to_epoch_ms(body.create_time)
            records.append(
                self._record(
                    source_id=source_id,
                    conversation_id=header.id,
                    role=_ROLE_MAP[body.sender].value,
                    created_at=created_at if created_at is not None else conversation_ts,
                    title=header.title,
                    text=text,
                    raw_path=raw_path,
                )
            )
        # Responses are not guaranteed to be in order
        records.sort(key=lambda r: r.created_at)
        return records
