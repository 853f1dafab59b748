"""Tests for VaultStorage: artifact files and the pointer index."""

from datetime import UTC, datetime, timedelta

import pytest

from tether.errors import (
    ArtifactExistsError,
    ExportNotFoundError,
    InvalidStateError,
    SessionNotFoundError,
)
from tether.models import Message, Session
from tether.storage.vault import is_valid_artifact_id, publish_file

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


def _imported(artifact_id: str = "claude-abc", **overrides) -> Session:
    fields = dict(
        session_id=artifact_id,
        title="Imported",
        source="claude-import",
        content_owner="local",
        source_id=artifact_id.split("-", 1)[1],
        artifact_id=artifact_id,
        archived=True,
        created_at=T0,
        last_accessed=T0,
        imported_at=T0,
    )
    fields.update(overrides)
    return Session(**fields)


def _native(session_id: str, last_accessed: datetime = T0, **overrides) -> Session:
    return Session(
        session_id=session_id, created_at=T0, last_accessed=last_accessed, **overrides
    )


MESSAGES = [
    Message(role="human", text="Hi", timestamp=T0),
    Message(role="assistant", text="Hello!", timestamp=T0 + timedelta(seconds=5)),
]


class TestPublishFile:
    def test_writes_and_leaves_no_temp_files(self, tmp_path):
        target = tmp_path / "dir" / "file.md"
        publish_file(target, "content")
        assert target.read_text(encoding="utf-8") == "content"
        assert [p.name for p in target.parent.iterdir()] == ["file.md"]

    def test_refuses_to_replace(self, tmp_path):
        target = tmp_path / "file.md"
        target.write_text("original", encoding="utf-8")
        with pytest.raises(FileExistsError):
            publish_file(target, "new")
        assert target.read_text(encoding="utf-8") == "original"
        assert [p.name for p in tmp_path.iterdir()] == ["file.md"]


class TestArtifacts:
    async def test_write_and_read_session(self, storage):
        path = await storage.write_session(_imported(), MESSAGES)
        assert path == storage.imported_dir / "claude-abc.md"
        assert await storage.exists("claude-abc")
        assert await storage.read_session_messages("claude-abc") == MESSAGES
        assert await storage.read_session_metadata("claude-abc") == _imported()

    async def test_write_never_overwrites(self, storage):
        await storage.write_session(_imported(), MESSAGES)
        with pytest.raises(ArtifactExistsError):
            await storage.write_session(_imported(title="Other"), MESSAGES[:1])
        assert await storage.read_session_messages("claude-abc") == MESSAGES
        assert (await storage.read_session_metadata("claude-abc")).title == "Imported"

    async def test_write_requires_artifact_id(self, storage):
        with pytest.raises(InvalidStateError):
            await storage.write_session(_native("s1"), MESSAGES)

    @pytest.mark.parametrize("artifact_id", ["../escaped", "a/b", "claude-..", "", "x y"])
    async def test_artifact_path_rejects_unsafe_ids(self, storage, artifact_id):
        with pytest.raises(InvalidStateError):
            storage.artifact_path(artifact_id)

    def test_valid_artifact_ids(self):
        assert is_valid_artifact_id("claude-0a1b-2c3d")
        assert is_valid_artifact_id("chatgpt-6789.abc_def")
        assert not is_valid_artifact_id("claude-x/../../escaped")

    async def test_native_messages_are_not_local(self, storage):
        await storage.save_pointer(_native("s1"))
        with pytest.raises(InvalidStateError):
            await storage.read_session_messages("s1")

    async def test_unknown_session_messages(self, storage):
        with pytest.raises(SessionNotFoundError):
            await storage.read_session_messages("missing")

    async def test_restore_pointer(self, storage, db):
        await storage.write_session(_imported(), MESSAGES)
        assert await storage.restore_pointer("claude-abc") is False

        await db.execute("DELETE FROM sessions")
        assert await storage.restore_pointer("claude-abc") is True
        assert await storage.read_session_metadata("claude-abc") == _imported()

    async def test_context_files_are_created_once(self, storage):
        assert await storage.write_context_file("general-context", "first") is True
        assert await storage.write_context_file("general-context", "second") is False
        path = storage.contexts_dir / "general-context.md"
        assert path.read_text(encoding="utf-8") == "first"

    async def test_read_raw_export_file_missing(self, storage, tmp_path):
        with pytest.raises(ExportNotFoundError):
            await storage.read_raw_export_file(tmp_path / "nope.json")


class TestPointerIndex:
    async def test_round_trip(self, storage):
        session = _native("s1", title="Chat", continued_from="claude-abc")
        await storage.save_pointer(session)
        assert await storage.read_session_metadata("s1") == session
        assert await storage.read_session_metadata("missing") is None

    async def test_save_replaces(self, storage):
        await storage.save_pointer(_native("s1", title="Old"))
        await storage.save_pointer(_native("s1", title="New"))
        sessions = await storage.list_sessions()
        assert [(s.session_id, s.title) for s in sessions] == [("s1", "New")]

    async def test_list_orders_by_last_accessed(self, storage):
        await storage.save_pointer(_native("old", T0))
        await storage.save_pointer(_native("new", T0 + timedelta(hours=1)))
        await storage.save_pointer(_native("mid", T0 + timedelta(microseconds=500)))
        ids = [s.session_id for s in await storage.list_sessions()]
        assert ids == ["new", "mid", "old"]

    async def test_list_hides_archived(self, storage):
        await storage.save_pointer(_native("live"))
        await storage.write_session(_imported(), MESSAGES)
        assert [s.session_id for s in await storage.list_sessions()] == ["live"]
        everything = await storage.list_sessions(include_archived=True)
        assert {s.session_id for s in everything} == {"live", "claude-abc"}

    async def test_set_archived(self, storage):
        await storage.write_session(_imported(), MESSAGES)
        updated = await storage.set_archived("claude-abc", False)
        assert updated.archived is False
        assert (await storage.read_session_metadata("claude-abc")).archived is False

    async def test_set_archived_unknown(self, storage):
        with pytest.raises(SessionNotFoundError):
            await storage.set_archived("missing", True)

    async def test_touch(self, storage):
        await storage.save_pointer(_native("s1"))
        later = T0 + timedelta(days=1)
        await storage.touch("s1", later)
        assert (await storage.read_session_metadata("s1")).last_accessed == later
