"""VaultStorage: the pointer index plus the files that live in the vault.

Layout under the vault root:

    sessions/imported/<artifact-id>.md   content of imported sessions
    contexts/<name>.md                   memory/context files from exports

The SQLite index holds one pointer row per session. Native sessions have
only the row; their messages are owned by the backend.
"""

import logging
import os
import re
import tempfile
from datetime import datetime
from pathlib import Path

from tether.db.connection import Database
from tether.errors import ArtifactExistsError, ExportNotFoundError, InvalidStateError, SessionNotFoundError
from tether.models import Message, Session
from tether.storage.artifacts import parse_artifact, render_artifact
from tether.utils.timestamps import parse_iso, to_iso

logger = logging.getLogger(__name__)

_ARTIFACT_ID = re.compile(r"[A-Za-z0-9._-]+")


def is_valid_artifact_id(artifact_id: str) -> bool:
    """True if ``artifact_id`` can name a file directly inside the imported folder."""
    return bool(_ARTIFACT_ID.fullmatch(artifact_id)) and ".." not in artifact_id


def publish_file(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` atomically, refusing to replace a file.

    The content goes to a temporary file in the same directory and is then
    hard-linked into place, so readers see either nothing or the whole file.
    Raises FileExistsError if ``path`` already exists.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, 0o644)
        os.link(tmp_name, path)
    finally:
        os.unlink(tmp_name)


class VaultStorage:
    def __init__(self, root: Path, db: Database) -> None:
        self.root = root
        self._db = db

    @property
    def imported_dir(self) -> Path:
        return self.root / "sessions" / "imported"

    @property
    def contexts_dir(self) -> Path:
        return self.root / "contexts"

    def artifact_path(self, artifact_id: str) -> Path:
        if not is_valid_artifact_id(artifact_id):
            raise InvalidStateError(f"Invalid artifact id: {artifact_id!r}")
        return self.imported_dir / f"{artifact_id}.md"

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    async def exists(self, artifact_id: str) -> bool:
        return self.artifact_path(artifact_id).is_file()

    async def write_session(self, session: Session, messages: list[Message]) -> Path:
        """Publish an artifact for a locally owned session and index it.

        Raises ArtifactExistsError if the artifact is already there.
        """
        if session.artifact_id is None:
            raise InvalidStateError(f"Session {session.session_id} has no artifact id")
        path = self.artifact_path(session.artifact_id)
        try:
            publish_file(path, render_artifact(session, messages))
        except FileExistsError as e:
            raise ArtifactExistsError(session.artifact_id) from e
        await self.save_pointer(session)
        return path

    async def read_artifact(self, artifact_id: str) -> tuple[Session, list[Message]]:
        path = self.artifact_path(artifact_id)
        try:
            with open(path, encoding="utf-8") as f:
                text = f.read()
        except FileNotFoundError as e:
            raise SessionNotFoundError(artifact_id) from e
        return parse_artifact(text)

    async def read_session_messages(self, session_id: str) -> list[Message]:
        """Messages of a locally owned session, read from its artifact."""
        session = await self.read_session_metadata(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.content_owner != "local" or session.artifact_id is None:
            raise InvalidStateError(f"Session {session_id} content is owned by the backend")
        _, messages = await self.read_artifact(session.artifact_id)
        return messages

    async def restore_pointer(self, artifact_id: str) -> bool:
        """Re-create a missing pointer row from an artifact's frontmatter.

        Returns True when a row was written.
        """
        session, _ = await self.read_artifact(artifact_id)
        if await self.read_session_metadata(session.session_id) is not None:
            return False
        await self.save_pointer(session)
        logger.info("Restored pointer for %s", session.session_id)
        return True

    async def write_context_file(self, name: str, content: str) -> bool:
        """Create ``contexts/<name>.md`` unless it exists. Returns True if created."""
        try:
            publish_file(self.contexts_dir / f"{name}.md", content)
        except FileExistsError:
            return False
        return True

    async def read_raw_export_file(self, path: Path) -> str:
        try:
            with open(path, encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError as e:
            raise ExportNotFoundError(str(path)) from e

    # ------------------------------------------------------------------
    # Pointer index
    # ------------------------------------------------------------------

    async def save_pointer(self, session: Session) -> None:
        """Insert or replace the pointer row for a session."""
        await self._db.execute(
            """INSERT OR REPLACE INTO sessions
               (session_id, title, source, content_owner, source_id, artifact_id,
                summary, continued_from, archived, created_at, last_accessed, imported_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                session.session_id,
                session.title,
                session.source,
                session.content_owner,
                session.source_id,
                session.artifact_id,
                session.summary,
                session.continued_from,
                int(session.archived),
                to_iso(session.created_at),
                to_iso(session.last_accessed),
                to_iso(session.imported_at) if session.imported_at else None,
            ),
        )

    async def read_session_metadata(self, session_id: str) -> Session | None:
        row = await self._db.fetchone(
            "SELECT * FROM sessions WHERE session_id = ?", (session_id,)
        )
        return self._session_from_row(row) if row else None

    async def list_sessions(self, include_archived: bool = False) -> list[Session]:
        """Sessions, most recently accessed first."""
        sql = "SELECT * FROM sessions"
        if not include_archived:
            sql += " WHERE archived = 0"
        rows = await self._db.fetchall(sql + " ORDER BY last_accessed DESC, session_id")
        return [self._session_from_row(r) for r in rows]

    async def set_archived(self, session_id: str, archived: bool) -> Session:
        session = await self.read_session_metadata(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        await self._db.execute(
            "UPDATE sessions SET archived = ? WHERE session_id = ?",
            (int(archived), session_id),
        )
        return session.model_copy(update={"archived": archived})

    async def touch(self, session_id: str, when: datetime) -> None:
        await self._db.execute(
            "UPDATE sessions SET last_accessed = ? WHERE session_id = ?",
            (to_iso(when), session_id),
        )

    @staticmethod
    def _session_from_row(row) -> Session:
        return Session(
            session_id=row["session_id"],
            title=row["title"],
            source=row["source"],
            content_owner=row["content_owner"],
            source_id=row["source_id"],
            artifact_id=row["artifact_id"],
            summary=row["summary"],
            continued_from=row["continued_from"],
            archived=bool(row["archived"]),
            created_at=parse_iso(row["created_at"]),
            last_accessed=parse_iso(row["last_accessed"]),
            imported_at=parse_iso(row["imported_at"]),
        )
