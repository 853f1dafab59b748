"""Shared test helpers: export builders and a scripted agent backend."""

import asyncio
import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from tether.backends.base import AgentBackend, ResumeOutcome, SendOptions
from tether.chat.events import StreamEvent
from tether.errors import SessionNotFoundError
from tether.models import Message

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Claude.ai export data
# ---------------------------------------------------------------------------


def make_claude_message(
    sender: str = "human",
    text: str = "Hello",
    created_at: str | None = "2024-03-01T10:00:00Z",
    *,
    uuid: str | None = None,
    attachments: int = 0,
    files: int = 0,
    content: list[dict] | None = None,
) -> dict:
    """Build a single Claude.ai chat_messages entry."""
    msg: dict[str, Any] = {
        "uuid": uuid or f"msg-{sender}",
        "sender": sender,
        "text": text,
        "attachments": [{"file_name": f"a{i}.txt"} for i in range(attachments)],
        "files": [{"file_name": f"f{i}.png"} for i in range(files)],
    }
    if created_at is not None:
        msg["created_at"] = created_at
    if content is not None:
        msg["content"] = content
    return msg


def make_claude_conversation(
    *,
    uuid: str = "conv-1",
    name: str = "Test Conversation",
    created_at: str = "2024-03-01T10:00:00Z",
    updated_at: str = "2024-03-01T11:00:00Z",
    summary: str = "",
    messages: list[dict] | None = None,
) -> dict:
    """Build a complete Claude.ai conversation object."""
    if messages is None:
        messages = [
            make_claude_message("human", "What is Python?", "2024-03-01T10:00:00Z"),
            make_claude_message(
                "assistant", "Python is a programming language.", "2024-03-01T10:00:05Z"
            ),
        ]
    return {
        "uuid": uuid,
        "name": name,
        "summary": summary,
        "created_at": created_at,
        "updated_at": updated_at,
        "chat_messages": messages,
    }


def write_claude_export(
    root: Path,
    conversations: list[dict],
    *,
    memories: list[dict] | None = None,
    projects: list[dict] | None = None,
) -> Path:
    """Write a Claude.ai export folder and return its path."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "conversations.json").write_text(json.dumps(conversations), encoding="utf-8")
    if memories is not None:
        (root / "memories.json").write_text(json.dumps(memories), encoding="utf-8")
    if projects is not None:
        (root / "projects.json").write_text(json.dumps(projects), encoding="utf-8")
    return root


# ---------------------------------------------------------------------------
# ChatGPT export data
# ---------------------------------------------------------------------------


def chatgpt_node(
    node_id: str,
    parent: str | None,
    children: list[str],
    role: str = "user",
    content: str | None = "Hello",
    *,
    parts: list | None = None,
    create_time: float | None = 1700000000.0,
    metadata: dict | None = None,
) -> dict:
    """Build a single ChatGPT mapping node."""
    msg = {
        "id": f"msg-{node_id}",
        "author": {"role": role},
        "create_time": create_time,
        "content": {"content_type": "text", "parts": parts if parts is not None else [content]},
        "metadata": metadata or {},
    }
    return {"id": node_id, "message": msg, "parent": parent, "children": children}


def chatgpt_structural_node(node_id: str, parent: str | None, children: list[str]) -> dict:
    """Build a structural ChatGPT node (message=null)."""
    return {"id": node_id, "message": None, "parent": parent, "children": children}


def make_chatgpt_conversation(
    *,
    conv_id: str = "gpt-1",
    title: str = "Test Chat",
    current_node: str | None = "a2",
    mapping: dict | None = None,
    is_archived: bool = False,
) -> dict:
    """Build a ChatGPT conversation: root -> system -> u1 -> a1 -> u2 -> a2."""
    if mapping is None:
        mapping = {
            "root": chatgpt_structural_node("root", None, ["sys"]),
            "sys": chatgpt_node("sys", "root", ["u1"], role="system",
                                content="You are a helpful assistant."),
            "u1": chatgpt_node("u1", "sys", ["a1"], role="user",
                               content="What is Python?", create_time=1700000000.0),
            "a1": chatgpt_node("a1", "u1", ["u2"], role="assistant",
                               content="A programming language.", create_time=1700000010.0),
            "u2": chatgpt_node("u2", "a1", ["a2"], role="user",
                               content="Tell me more.", create_time=1700000020.0),
            "a2": chatgpt_node("a2", "u2", [], role="assistant",
                               content="It was created by Guido van Rossum.",
                               create_time=1700000030.0),
        }
    return {
        "id": conv_id,
        "title": title,
        "create_time": 1700000000.0,
        "update_time": 1700001000.0,
        "current_node": current_node,
        "is_archived": is_archived,
        "mapping": mapping,
    }


def write_chatgpt_export(root: Path, conversations: list[dict]) -> Path:
    """Write a ChatGPT export folder and return its path."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "conversations.json").write_text(json.dumps(conversations), encoding="utf-8")
    return root


async def collect(stream: AsyncIterator) -> list:
    return [item async for item in stream]


# ---------------------------------------------------------------------------
# Scripted backend
# ---------------------------------------------------------------------------


def event(kind: str, **data: Any) -> StreamEvent:
    return StreamEvent(kind=kind, data={"type": kind, **data})


HOLD = object()


class FakeBackend(AgentBackend):
    """AgentBackend that replays scripted event lists, one per send.

    A script item may be a StreamEvent, an exception to raise, or HOLD to
    wait until ``release`` is set.
    """

    def __init__(self) -> None:
        self.scripts: list[list[Any]] = []
        self.sent: list[tuple[str | None, str, SendOptions | None]] = []
        self.available: set[str] = set()
        self.messages: dict[str, list[Message]] = {}
        self.aborted: list[str] = []
        self.closed_streams = 0
        self.release = asyncio.Event()
        self.unavailable_reason = "sdk_session_not_found"

    def script(self, *items: Any) -> None:
        self.scripts.append(list(items))

    async def resume(self, session_id: str) -> ResumeOutcome:
        return ResumeOutcome(
            session_id=session_id,
            available=session_id in self.available,
            reason=None if session_id in self.available else self.unavailable_reason,
            has_local_history=True,
            message_count=len(self.messages.get(session_id, [])),
        )

    async def send(
        self,
        session_id: str | None,
        message: str,
        options: SendOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        self.sent.append((session_id, message, options))
        items = self.scripts.pop(0) if self.scripts else []
        try:
            for item in items:
                if item is HOLD:
                    await self.release.wait()
                elif isinstance(item, BaseException):
                    raise item
                else:
                    yield item
        finally:
            self.closed_streams += 1

    async def abort(self, session_id: str) -> bool:
        self.aborted.append(session_id)
        return True

    async def fetch_messages(self, session_id: str) -> list[Message]:
        if session_id not in self.messages:
            raise SessionNotFoundError(session_id)
        return list(self.messages[session_id])


def parse_sse(body: str) -> list[tuple[str, dict]]:
    """Split an SSE response body into (event name, decoded data) pairs."""
    events = []
    for chunk in body.strip().split("\n\n"):
        name, data = "message", ""
        for line in chunk.split("\n"):
            if line.startswith("event: "):
                name = line[len("event: "):]
            elif line.startswith("data: "):
                data = line[len("data: "):]
        events.append((name, json.loads(data)))
    return events
