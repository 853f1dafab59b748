"""ContinuityManager: decides how a session can be picked up again.

Sessions are pointers. A native session's messages live on the backend,
so reopening one means asking the backend whether it can still resume it.
An imported session's messages live in its local artifact; it is never
resumed. It is continued instead: a new native session is started, the
imported conversation is sent once as prior context, and the new session
records where it came from. The imported session is never modified.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel

from tether.backends.base import AgentBackend
from tether.errors import InvalidStateError, SessionNotFoundError
from tether.models import (
    ContinueFromImported,
    ContinuityDecision,
    FreshSession,
    Message,
    RecoveryNeeded,
    ResumeSession,
    Session,
    SessionUnavailableInfo,
)
from tether.storage.vault import VaultStorage
from tether.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

MAX_PRIOR_CONTEXT_CHARS = 50_000
_TITLE_PREVIEW_CHARS = 50


def format_prior_context(messages: list[Message], limit: int = MAX_PRIOR_CONTEXT_CHARS) -> str:
    """Render messages as "Human: ..." / "Assistant: ..." paragraphs.

    Keeps the most recent messages whose rendering fits in ``limit``
    characters; older ones are dropped whole.
    """
    blocks: list[str] = []
    used = 0
    for message in reversed(messages):
        speaker = "Human" if message.role == "human" else "Assistant"
        block = f"{speaker}: {message.text}"
        size = len(block) + (2 if blocks else 0)
        if used + size > limit:
            break
        blocks.append(block)
        used += size
    blocks.reverse()
    return "\n\n".join(blocks)


def title_from_text(text: str) -> str | None:
    text = " ".join(text.split())
    if not text:
        return None
    if len(text) > _TITLE_PREVIEW_CHARS:
        return f"{text[:_TITLE_PREVIEW_CHARS]}..."
    return text


class Continuation(BaseModel):
    """An imported session prepared for continuing in a new native session."""

    original: Session
    prior_messages: list[Message]
    prior_conversation: str


class ContinuityManager:
    def __init__(
        self,
        storage: VaultStorage,
        backend: AgentBackend,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._backend = backend
        self._clock = clock

    async def decide(self, session_id: str | None) -> ContinuityDecision:
        """How to open ``session_id``.

        Imported sessions are answered locally. Native sessions, and ids
        with no local record, are checked with the backend.
        """
        if not session_id:
            return FreshSession()

        session = await self._storage.read_session_metadata(session_id)
        if session is not None and session.content_owner == "local":
            messages = await self._storage.read_session_messages(session_id)
            return ContinueFromImported(original_session_id=session_id, prior_messages=messages)

        outcome = await self._backend.resume(session_id)
        if outcome.available:
            if session is not None:
                await self._storage.touch(session_id, self._clock())
            return ResumeSession(session_id=session_id)

        logger.info("Session %s unavailable: %s", session_id, outcome.reason)
        info = SessionUnavailableInfo(
            session_id=session_id,
            reason=outcome.reason or "unknown",
            has_local_history=outcome.has_local_history,
            prior_message_count=outcome.message_count,
        )
        if outcome.message:
            info.message = outcome.message
        return RecoveryNeeded(info=info)

    async def continue_imported(self, session_id: str) -> Continuation:
        """Prepare continuing an imported session. Writes nothing."""
        original = await self._storage.read_session_metadata(session_id)
        if original is None:
            raise SessionNotFoundError(session_id)
        if original.content_owner != "local":
            raise InvalidStateError(f"Session {session_id} is native; resume it instead")

        messages = await self._storage.read_session_messages(session_id)
        return Continuation(
            original=original,
            prior_messages=messages,
            prior_conversation=format_prior_context(messages),
        )

    async def load_history(self, session: Session | str) -> list[Message]:
        """Messages of a session, read from whichever side owns them."""
        if isinstance(session, str):
            record = await self._storage.read_session_metadata(session)
            if record is None:
                return await self._backend.fetch_messages(session)
            session = record
        if session.content_owner == "local":
            return await self._storage.read_session_messages(session.session_id)
        return await self._backend.fetch_messages(session.session_id)

    async def record_native(
        self,
        session_id: str,
        *,
        title: str | None = None,
        fallback_title: str | None = None,
        continued_from: str | None = None,
    ) -> Session:
        """Create or refresh the pointer row of a native session.

        ``title`` is the backend's title and wins; ``fallback_title`` only
        fills a session that has none.
        """
        now = self._clock()
        existing = await self._storage.read_session_metadata(session_id)
        if existing is not None:
            session = existing.model_copy(update={
                "title": title or existing.title or fallback_title,
                "last_accessed": now,
            })
        else:
            session = Session(
                session_id=session_id,
                title=title or fallback_title,
                source="native",
                content_owner="remote",
                continued_from=continued_from,
                created_at=now,
                last_accessed=now,
            )
        await self._storage.save_pointer(session)
        return session
