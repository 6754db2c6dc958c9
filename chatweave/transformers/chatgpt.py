"""
ChatGPT transformer.

ChatGPT exports store each conversation as a tree of nodes so the user
can branch off from earlier messages. The transformer flattens the tree
to the visible branch and emits one record per message with text.
"""

import json
import logging
from typing import Dict, List, Optional

from chatweave.core.models import NormalizedRecord
from chatweave.core.source_schemas.chatgpt import (
    ROOT_PARENT_ID,
    AuthorRole,
    ChatGPTContent,
    ChatGPTConversation,
    ChatGPTMessage,
    ChatGPTNode,
)
from chatweave.transformers.base import BaseTransformer, to_epoch_ms

logger = logging.getLogger(__name__)


def flatten_message_tree(mapping: Dict[str, ChatGPTNode], current_node: Optional[str] = None) -> List[ChatGPTMessage]:
    """
    Convert ChatGPT's message tree to a flat, chronological list.

    When ``current_node`` is known the branch the user last saw is
    rebuilt by walking parent links back to the root. Otherwise the tree
    is walked forward from the root, following the newest child at each
    fork.

    Parameters
    ----------
    mapping : Dict[str, ChatGPTNode]
        Node id to node
    current_node : str, optional
        Id of the leaf of the active branch

    Returns
    -------
    List[ChatGPTMessage]
        Messages on the chosen branch, root first
    """
    if not mapping:
        return []

    if current_node and current_node in mapping:
        path = []
        visited = set()
        node_id = current_node
        while node_id and node_id in mapping:
            if node_id in visited:
                logger.warning("Circular reference detected in message tree at %s", node_id)
                break
            visited.add(node_id)
            path.append(mapping[node_id])
            node_id = mapping[node_id].parent
        path.reverse()
        return [node.message for node in path if node.message is not None]

    root_id = None
    for node_id, node in mapping.items():
        if node.parent is None or node.parent == ROOT_PARENT_ID or node.parent not in mapping:
            root_id = node_id
            break

    if not root_id:
        logger.warning("No root node found in message tree")
        return []

    messages = []
    visited = set()
    node_id = root_id
    while node_id and node_id in mapping:
        if node_id in visited:
            logger.warning("Circular reference detected in message tree at %s", node_id)
            break
        visited.add(node_id)
        node = mapping[node_id]
        if node.message is not None:
            messages.append(node.message)
        # Children are appended as branches are created; the last is the newest
        node_id = node.children[-1] if node.children else None
    return messages


def content_text(content: ChatGPTContent) -> str:
    """Join the textual parts of a message content object."""
    pieces = []
    for part in content.parts:
        if isinstance(part, str):
            pieces.append(part)
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            pieces.append(part["text"])
    if not pieces and content.text:
        pieces.append(content.text)
    return "\n".join(p for p in pieces if p).strip()


class ChatGPTTransformer(BaseTransformer):
    """
    Transformer for ChatGPT conversations.json items.

    Tool messages keep the tool name and the raw content object as
    ``toolJson``. Messages without a timestamp inherit the
    conversation's creation time.
    """

    schema = ChatGPTConversation

    @property
    def source_name(self) -> str:
        return "chatgpt"

    def _records(self, parsed: ChatGPTConversation, source_id: str, raw_path: Optional[str]) -> List[NormalizedRecord]:
        conversation_ts = to_epoch_ms(parsed.create_time)
        if conversation_ts is None:
            raise self._fail("conversation create_time is not a valid timestamp", parsed.native_id)

        records = []
        for message in flatten_message_tree(parsed.mapping, parsed.current_node):
            text = content_text(message.content)
            if not text:
                continue

            role = message.author.role
            tool_name = None
            tool_json = None
            if role == AuthorRole.TOOL:
                tool_name = message.author.name
                tool_json = json.dumps(message.content.model_dump(exclude_none=True), sort_keys=True)

            created_at = to_epoch_ms(message.create_time)
            records.append(
                self._record(
                    source_id=source_id,
                    conversation_id=parsed.native_id,
                    role=role.value,
                    created_at=created_at if created_at is not None else conversation_ts,
                    title=parsed.title,
                    text=text,
                    tool_name=tool_name,
                    tool_json=tool_json,
                    raw_path=raw_path,
                )
            )
        return records
