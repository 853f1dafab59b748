"""Parser for the ChatGPT conversations.json export format.

ChatGPT's export is tree-native: a `mapping` dict of nodes with parent
pointers, and `current_node` naming the leaf of the branch the user last
saw. Only that branch is imported. Structural nodes (message=null), system
and tool messages, and non-text content parts are skipped.
"""

from datetime import datetime
from typing import Any

from tether.importer.models import ChatGPTConversation, ChatGPTMessage, ParsedConversation
from tether.models import Message
from tether.utils.timestamps import from_epoch

_ROLES = {"user": "human", "assistant": "assistant"}


def _extract_content(message: ChatGPTMessage) -> str:
    """Join the string parts of a message. Images and files are dicts and skipped."""
    text_parts = [p for p in message.content.parts if isinstance(p, str)]
    return "\n".join(text_parts)


def active_branch(conv: ChatGPTConversation) -> list[str]:
    """Node ids from the root to `current_node`.

    Empty when `current_node` is missing, a parent reference dangles, or the
    parent chain loops.
    """
    node_id = conv.current_node
    if node_id is None:
        return []

    path: list[str] = []
    visited: set[str] = set()
    while node_id is not None:
        if node_id in visited:
            return []
        node = conv.mapping.get(node_id)
        if node is None:
            return []
        visited.add(node_id)
        path.append(node_id)
        node_id = node.parent

    path.reverse()
    return path


def parse_chatgpt_conversation(
    conv: ChatGPTConversation | dict[str, Any],
    reference_time: datetime,
) -> ParsedConversation | None:
    """Convert one ChatGPT conversation to canonical messages.

    Returns None when the active branch holds no user/assistant text.
    """
    if isinstance(conv, dict):
        conv = ChatGPTConversation.model_validate(conv)

    messages: list[Message] = []
    for node_id in active_branch(conv):
        msg = conv.mapping[node_id].message
        if msg is None:
            continue
        role = _ROLES.get(msg.author.role or "")
        if role is None:
            continue
        if not any(isinstance(p, str) for p in msg.content.parts):
            continue

        timestamp = from_epoch(msg.create_time)
        messages.append(Message(
            role=role,
            text=_extract_content(msg),
            timestamp=timestamp or reference_time,
            timestamp_estimated=timestamp is None,
        ))

    if not messages:
        return None

    return ParsedConversation(
        kind="chatgpt",
        source_id=conv.source_id,
        title=conv.title or "Untitled",
        messages=messages,
        created_at=from_epoch(conv.create_time),
        updated_at=from_epoch(conv.update_time),
        archived_in_source=conv.is_archived,
    )


def find_user_context(conv: ChatGPTConversation) -> tuple[str, str | None] | None:
    """Return (about_user, about_model) from the first node carrying custom instructions."""
    for node in conv.mapping.values():
        if node.message is None:
            continue
        user_context = node.message.metadata.get("user_context_message_data")
        if not isinstance(user_context, dict):
            continue
        about_user = user_context.get("about_user_message")
        if isinstance(about_user, str) and about_user:
            about_model = user_context.get("about_model_message")
            return about_user, about_model if isinstance(about_model, str) and about_model else None
    return None
