"""Validated shapes of the supported export files, plus the parser output.

Export JSON is loaded into these models before any transformation, so every
field the parsers read has a declared default. Unknown keys are ignored;
exports grow new fields all the time.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tether.models import ExportKind, Message

# ---------------------------------------------------------------------------
# Claude.ai export (conversations.json, memories.json, projects.json)
# ---------------------------------------------------------------------------


class _ExportModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ClaudeChatMessage(_ExportModel):
    uuid: str | None = None
    sender: str | None = None
    text: str | None = None
    content: list[Any] = Field(default_factory=list)
    created_at: str | None = None
    attachments: list[Any] = Field(default_factory=list)
    files: list[Any] = Field(default_factory=list)


class ClaudeConversation(_ExportModel):
    uuid: str | None = None
    name: str | None = None
    summary: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    chat_messages: list[ClaudeChatMessage] = Field(default_factory=list)


class ClaudeMemory(_ExportModel):
    conversations_memory: str | None = None
    # project uuid -> memory text
    project_memories: dict[str, str] = Field(default_factory=dict)


class ClaudeProject(_ExportModel):
    uuid: str | None = None
    name: str | None = None
    description: str | None = None
    prompt_template: str | None = None


# ---------------------------------------------------------------------------
# ChatGPT export (conversations.json)
# ---------------------------------------------------------------------------


class ChatGPTAuthor(_ExportModel):
    role: str | None = None


class ChatGPTContent(_ExportModel):
    content_type: str | None = None
    parts: list[Any] = Field(default_factory=list)


class ChatGPTMessage(_ExportModel):
    id: str | None = None
    author: ChatGPTAuthor = Field(default_factory=ChatGPTAuthor)
    create_time: float | None = None
    content: ChatGPTContent = Field(default_factory=ChatGPTContent)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChatGPTNode(_ExportModel):
    id: str | None = None
    message: ChatGPTMessage | None = None
    parent: str | None = None
    children: list[str] = Field(default_factory=list)


class ChatGPTConversation(_ExportModel):
    id: str | None = None
    conversation_id: str | None = None
    title: str | None = None
    create_time: float | None = None
    update_time: float | None = None
    current_node: str | None = None
    is_archived: bool = False
    mapping: dict[str, ChatGPTNode] = Field(default_factory=dict)

    @property
    def source_id(self) -> str | None:
        return self.id or self.conversation_id


# ---------------------------------------------------------------------------
# Parser output
# ---------------------------------------------------------------------------


@dataclass
class ParsedConversation:
    """One exported conversation in canonical form, ready to persist."""

    kind: ExportKind
    source_id: str | None
    title: str
    messages: list[Message] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    summary: str | None = None
    archived_in_source: bool = False
