"""Events of the backend's chat stream and their SSE line decoding.

The backend sends one JSON object per ``data:`` line, discriminated by a
``type`` key. Kinds this client does not know are passed through as-is and
ignored by the consumer.
"""

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

from tether.models import SessionResumeInfo, ToolCall

logger = logging.getLogger(__name__)

EventKind = Literal[
    "session",
    "init",
    "model",
    "text",
    "thinking",
    "tool_use",
    "tool_result",
    "done",
    "aborted",
    "session_unavailable",
    "error",
]

KNOWN_KINDS: frozenset[str] = frozenset(EventKind.__args__)


class StreamEvent(BaseModel):
    kind: str
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def parse(cls, line: str) -> "StreamEvent | None":
        """Decode one SSE line. Returns None for lines that carry no event.

        ``data: [DONE]`` and empty data are ``done``; undecodable JSON becomes
        an ``error`` event so the exchange ends instead of hanging.
        """
        if not line.startswith("data:"):
            return None
        payload = line[len("data:"):].strip()
        if not payload or payload == "[DONE]":
            return cls(kind="done")
        try:
            data = json.loads(payload)
        except ValueError as e:
            logger.warning("Undecodable stream event: %s", e)
            return cls(kind="error", data={"error": f"Failed to parse event: {e}", "raw": payload})
        if not isinstance(data, dict):
            return cls(kind="error", data={"error": "Event is not an object", "raw": payload})
        kind = data.get("type")
        return cls(kind=kind if isinstance(kind, str) else "unknown", data=data)

    @property
    def known(self) -> bool:
        return self.kind in KNOWN_KINDS

    # -- Payload accessors --

    def _str(self, key: str) -> str | None:
        value = self.data.get(key)
        return value if isinstance(value, str) else None

    @property
    def session_id(self) -> str | None:
        return self._str("sessionId")

    @property
    def title(self) -> str | None:
        return self._str("title")

    @property
    def content(self) -> str:
        """Text delta for ``text``/``thinking``, result body for ``tool_result``."""
        value = self.data.get("content")
        if isinstance(value, str):
            return value
        if value is None:
            return ""
        return json.dumps(value)

    @property
    def model(self) -> str | None:
        return self._str("model")

    @property
    def tools(self) -> list[str]:
        tools = self.data.get("tools")
        if not isinstance(tools, list):
            return []
        names = [t.get("name") if isinstance(t, dict) else t for t in tools]
        return [n for n in names if isinstance(n, str) and n]

    @property
    def tool_call(self) -> ToolCall | None:
        tool = self.data.get("tool")
        if not isinstance(tool, dict) or not tool.get("id"):
            return None
        tool_input = tool.get("input")
        return ToolCall(
            id=str(tool["id"]),
            name=str(tool.get("name") or "unknown"),
            input=tool_input if isinstance(tool_input, dict) else {},
        )

    @property
    def tool_use_id(self) -> str | None:
        return self._str("toolUseId")

    @property
    def is_error(self) -> bool:
        return self.data.get("isError") is True

    @property
    def duration_ms(self) -> int | None:
        value = self.data.get("durationMs")
        return value if isinstance(value, int) else None

    @property
    def resume_info(self) -> SessionResumeInfo | None:
        resume = self.data.get("sessionResume")
        if not isinstance(resume, dict):
            return None
        return SessionResumeInfo(
            method=str(resume.get("method") or "new"),
            sdk_resume_failed=resume.get("sdkResumeFailed") is True,
            context_injected=resume.get("contextInjected") is True,
            messages_injected=(
                resume["messagesInjected"]
                if isinstance(resume.get("messagesInjected"), int)
                else 0
            ),
        )

    @property
    def reason(self) -> str | None:
        return self._str("reason")

    @property
    def has_markdown_history(self) -> bool:
        return self.data.get("hasMarkdownHistory") is True

    @property
    def message_count(self) -> int:
        value = self.data.get("messageCount")
        return value if isinstance(value, int) else 0

    @property
    def message(self) -> str | None:
        return self._str("message")

    @property
    def error(self) -> str:
        return self._str("error") or self._str("message") or "Unknown error"
