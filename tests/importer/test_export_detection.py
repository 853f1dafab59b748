"""Tests for export folder detection and discovery."""

import pytest

from tether.errors import UnknownExportError
from tether.importer.parsers.detection import detect_export_kind, detect_format, discover_exports
from tests.fixtures import (
    make_chatgpt_conversation,
    make_claude_conversation,
    write_chatgpt_export,
    write_claude_export,
)


class TestFormatDetection:
    def test_detect_format(self):
        assert detect_format([make_chatgpt_conversation()]) == "chatgpt"
        assert detect_format([make_claude_conversation()]) == "claude"
        assert detect_format(make_claude_conversation()) == "claude"

    def test_detect_format_rejects_unknown(self):
        with pytest.raises(UnknownExportError):
            detect_format([{"role": "user", "content": "hi"}])
        with pytest.raises(UnknownExportError):
            detect_format([])


class TestExportKindDetection:
    def test_memories_file_means_claude(self, tmp_path):
        root = write_claude_export(tmp_path / "export", [], memories=[])
        assert detect_export_kind(root) == "claude"

    def test_projects_file_means_claude(self, tmp_path):
        root = write_claude_export(tmp_path / "export", [], projects=[])
        assert detect_export_kind(root) == "claude"

    def test_conversation_shape_decides(self, tmp_path):
        claude = write_claude_export(tmp_path / "claude", [make_claude_conversation()])
        chatgpt = write_chatgpt_export(tmp_path / "chatgpt", [make_chatgpt_conversation()])
        assert detect_export_kind(claude) == "claude"
        assert detect_export_kind(chatgpt) == "chatgpt"

    def test_empty_conversations_defaults_to_chatgpt(self, tmp_path):
        root = write_chatgpt_export(tmp_path / "export", [])
        assert detect_export_kind(root) == "chatgpt"

    def test_folder_without_conversations(self, tmp_path):
        (tmp_path / "export").mkdir()
        with pytest.raises(UnknownExportError):
            detect_export_kind(tmp_path / "export")

    def test_unreadable_conversations(self, tmp_path):
        root = tmp_path / "export"
        root.mkdir()
        (root / "conversations.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(UnknownExportError):
            detect_export_kind(root)


class TestDiscoverExports:
    def test_discover_lists_claude_first(self, tmp_path):
        write_chatgpt_export(tmp_path / "a-chatgpt", [make_chatgpt_conversation()])
        write_claude_export(tmp_path / "b-claude", [make_claude_conversation()], memories=[])
        (tmp_path / "not-an-export").mkdir()
        (tmp_path / ".hidden").mkdir()

        found = discover_exports(tmp_path)
        assert [(kind, path.name) for kind, path in found] == [
            ("claude", "b-claude"),
            ("chatgpt", "a-chatgpt"),
        ]

    def test_discover_missing_folder(self, tmp_path):
        assert discover_exports(tmp_path / "nope") == []
