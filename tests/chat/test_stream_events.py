"""Tests for SSE line decoding and event payload accessors."""

import json

import pytest

from tether.chat.events import KNOWN_KINDS, StreamEvent


def _line(**data) -> str:
    return f"data: {json.dumps(data)}"


class TestParse:
    def test_typed_event(self):
        event = StreamEvent.parse(_line(type="text", content="Hi"))
        assert event.kind == "text"
        assert event.content == "Hi"
        assert event.known

    @pytest.mark.parametrize("line", ["", ": keepalive", "event: text", "id: 4"])
    def test_non_data_lines(self, line):
        assert StreamEvent.parse(line) is None

    @pytest.mark.parametrize("line", ["data: [DONE]", "data:", "data:   "])
    def test_done_sentinels(self, line):
        assert StreamEvent.parse(line).kind == "done"

    def test_undecodable_json_becomes_error(self):
        event = StreamEvent.parse("data: {not json")
        assert event.kind == "error"
        assert event.error.startswith("Failed to parse event")

    def test_non_object_becomes_error(self):
        event = StreamEvent.parse("data: [1, 2]")
        assert event.kind == "error"
        assert event.error == "Event is not an object"

    def test_unknown_kinds_pass_through(self):
        event = StreamEvent.parse(_line(type="heartbeat"))
        assert event.kind == "heartbeat"
        assert not event.known
        assert StreamEvent.parse(_line(content="x")).kind == "unknown"

    def test_done_payload(self):
        parsed = StreamEvent.parse(_line(type="done", sessionId="s1", durationMs=12))
        assert parsed.kind == "done"
        assert parsed.session_id == "s1"
        assert parsed.duration_ms == 12

    def test_known_kinds(self):
        assert KNOWN_KINDS == {
            "session", "init", "model", "text", "thinking", "tool_use",
            "tool_result", "done", "aborted", "session_unavailable", "error",
        }


class TestAccessors:
    def test_tools_accept_names_and_objects(self):
        event = StreamEvent(kind="init", data={"tools": ["Read", {"name": "Bash"}, {}, 3, ""]})
        assert event.tools == ["Read", "Bash"]
        assert StreamEvent(kind="init", data={"tools": "Read"}).tools == []

    def test_tool_call(self):
        event = StreamEvent(kind="tool_use", data={
            "tool": {"id": "t1", "name": "Read", "input": {"path": "a.md"}},
        })
        call = event.tool_call
        assert call.id == "t1"
        assert call.name == "Read"
        assert call.input == {"path": "a.md"}
        assert StreamEvent(kind="tool_use", data={"tool": {"name": "Read"}}).tool_call is None

    def test_structured_content_is_serialized(self):
        event = StreamEvent(kind="tool_result", data={"content": [{"type": "text"}]})
        assert json.loads(event.content) == [{"type": "text"}]
        assert StreamEvent(kind="text").content == ""

    def test_resume_info(self):
        event = StreamEvent(kind="session", data={"sessionResume": {
            "method": "context_injection",
            "sdkResumeFailed": True,
            "contextInjected": True,
            "messagesInjected": 12,
        }})
        info = event.resume_info
        assert info.method == "context_injection"
        assert info.sdk_resume_failed is True
        assert info.context_injected is True
        assert info.messages_injected == 12
        assert StreamEvent(kind="session").resume_info is None

    def test_resume_info_tolerates_bad_values(self):
        event = StreamEvent(kind="session", data={"sessionResume": {"messagesInjected": "12"}})
        assert event.resume_info.messages_injected == 0
        assert event.resume_info.method == "new"

    def test_wrong_types_are_ignored(self):
        event = StreamEvent(kind="done", data={
            "sessionId": 42, "durationMs": "12", "messageCount": None, "isError": "yes",
        })
        assert event.session_id is None
        assert event.duration_ms is None
        assert event.message_count == 0
        assert event.is_error is False

    def test_error_text_fallbacks(self):
        assert StreamEvent(kind="error", data={"error": "boom"}).error == "boom"
        assert StreamEvent(kind="error", data={"message": "bad"}).error == "bad"
        assert StreamEvent(kind="error").error == "Unknown error"
