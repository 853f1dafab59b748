"""Parser for the Claude.ai conversation export format.

Claude.ai exports each conversation as a flat, ordered `chat_messages`
array. `sender` is "human" or "assistant"; the turn text is in `text`, or
(in newer exports) only in the typed `content` blocks. Attachments and
uploaded files are counted but not carried over.
"""

from datetime import datetime
from typing import Any

from tether.importer.models import ClaudeChatMessage, ClaudeConversation, ParsedConversation
from tether.models import Message
from tether.utils.timestamps import parse_iso

_TITLE_PREVIEW_CHARS = 50


def _extract_content(message: ClaudeChatMessage) -> str:
    """Return the turn's text, falling back to its text-type content blocks.

    Skips tool_use, tool_result, web_search, and other non-text block types.
    """
    if message.text:
        return message.text

    text_parts: list[str] = []
    for block in message.content:
        if not isinstance(block, dict):
            continue
        if block.get("type") == "text":
            text = block.get("text")
            if isinstance(text, str) and text:
                text_parts.append(text)
    return "\n".join(text_parts)


def conversation_title(conv: ClaudeConversation) -> str:
    """Display title: the name, else a preview of the first turn."""
    if conv.name:
        return conv.name
    if conv.chat_messages:
        first = _extract_content(conv.chat_messages[0])
        if len(first) > _TITLE_PREVIEW_CHARS:
            return f"{first[:_TITLE_PREVIEW_CHARS]}..."
        if first:
            return first
    return "Untitled conversation"


def parse_claude_conversation(
    conv: ClaudeConversation | dict[str, Any],
    reference_time: datetime,
) -> ParsedConversation | None:
    """Convert one Claude.ai conversation to canonical messages.

    Returns None for conversations with no turns. Turns without a parseable
    `created_at` get ``reference_time`` and are marked as estimated.
    """
    if isinstance(conv, dict):
        conv = ClaudeConversation.model_validate(conv)
    if not conv.chat_messages:
        return None

    messages: list[Message] = []
    for msg in conv.chat_messages:
        timestamp = parse_iso(msg.created_at)
        messages.append(Message(
            role="human" if msg.sender == "human" else "assistant",
            text=_extract_content(msg),
            timestamp=timestamp or reference_time,
            timestamp_estimated=timestamp is None,
            attachment_count=len(msg.attachments) + len(msg.files),
        ))

    return ParsedConversation(
        kind="claude",
        source_id=conv.uuid,
        title=conversation_title(conv),
        messages=messages,
        created_at=parse_iso(conv.created_at),
        updated_at=parse_iso(conv.updated_at),
        summary=conv.summary or None,
    )
