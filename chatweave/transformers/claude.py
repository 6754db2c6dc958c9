"""
Claude.ai transformer.

Converts conversations from the Claude.ai data export into normalized
records. Message text comes from the ``text`` content blocks, falling
back to the flattened ``text`` field older exports carry.
"""

import json
import logging
from typing import List, Optional

from chatweave.core.models import MessageRole, NormalizedRecord
from chatweave.core.source_schemas.claude import (
    ClaudeContentBlock,
    ClaudeConversation,
    SenderRole,
)
from chatweave.transformers.base import BaseTransformer, to_epoch_ms

logger = logging.getLogger(__name__)

_ROLE_MAP = {
    SenderRole.HUMAN: MessageRole.USER,
    SenderRole.ASSISTANT: MessageRole.ASSISTANT,
}


def extract_text_from_content(content: List[ClaudeContentBlock]) -> str:
    """
    Extract text from Claude.ai content blocks.

    Only ``text`` blocks contribute; thinking and tool blocks are not
    part of the visible conversation.

    Returns
    -------
    str
        Block texts joined with blank lines
    """
    parts = [block.text for block in content if block.type == "text" and block.text]
    return "\n\n".join(parts).strip()


class ClaudeTransformer(BaseTransformer):
    """
    Transformer for Claude.ai conversations.json items.

    The first ``tool_use`` block of an assistant turn is kept as the
    record's tool name and ``toolJson``.
    """

    schema = ClaudeConversation

    @property
    def source_name(self) -> str:
        return "claude"

    def _records(self, parsed: ClaudeConversation, source_id: str, raw_path: Optional[str]) -> List[NormalizedRecord]:
        conversation_ts = to_epoch_ms(parsed.created_at)
        if conversation_ts is None:
            raise self._fail(f"invalid created_at {parsed.created_at!r}", parsed.uuid)

        records = []
        for message in parsed.chat_messages:
            text = extract_text_from_content(message.content) or (message.text or "").strip()
            if not text:
                logger.debug("Skipping empty message %s in %s", message.uuid, parsed.uuid)
                continue

            tool_name = None
            tool_json = None
            tool_block = next((b for b in message.content if b.type == "tool_use"), None)
            if tool_block is not None:
                tool_name = tool_block.name
                tool_json = json.dumps(tool_block.model_dump(exclude_none=True), sort_keys=True)

            created_at = to_epoch_ms(message.created_at)
            records.append(
                self._record(
                    source_id=source_id,
                    conversation_id=parsed.uuid,
                    role=_ROLE_MAP[message.sender].value,
                    created_at=created_at if created_at is not None else conversation_ts,
                    title=parsed.name,
                    text=text,
                    tool_name=tool_name,
                    tool_json=tool_json,
                    raw_path=raw_path,
                )
            )
        return records
