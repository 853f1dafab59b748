"""Abstract agent backend interface and shared data types."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Literal

from pydantic import BaseModel

from tether.chat.events import StreamEvent
from tether.models import Message


class SendOptions(BaseModel):
    """Extra fields sent with a message."""

    # Earlier conversation, sent once on the first message of a continuation
    prior_conversation: str | None = None
    continued_from: str | None = None
    recovery_mode: Literal["inject_context", "fresh_start"] | None = None
    contexts: list[str] | None = None


class ResumeOutcome(BaseModel):
    """Whether the backend can still attach to a session."""

    session_id: str
    available: bool
    reason: str | None = None
    has_local_history: bool = False
    message_count: int = 0
    message: str | None = None


class AgentBackend(ABC):
    """Interface to the agent server that owns native session content."""

    @abstractmethod
    async def resume(self, session_id: str) -> ResumeOutcome:
        """Ask whether ``session_id`` can be continued."""
        ...

    @abstractmethod
    def send(
        self,
        session_id: str | None,
        message: str,
        options: SendOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Send a message and yield the reply's events in arrival order.

        ``session_id`` None starts a new session. Raises TransportError when
        the backend cannot be reached or the stream breaks.
        """
        ...

    @abstractmethod
    async def abort(self, session_id: str) -> bool:
        """Ask the backend to stop generating. Returns True if it acknowledged."""
        ...

    @abstractmethod
    async def fetch_messages(self, session_id: str) -> list[Message]:
        """Content of a native session. Raises SessionNotFoundError if unknown."""
        ...

    async def aclose(self) -> None:
        """Release connections. Default: nothing to release."""
