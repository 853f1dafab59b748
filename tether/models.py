"""Canonical data structures for Tether.

Defined once here, referenced everywhere else. Parsers, the import
pipeline, the stream consumer and the continuity manager all speak in these
shapes; storage and transport translate to and from them at the edges.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

SessionSource = Literal["native", "claude-import", "chatgpt-import"]
ContentOwner = Literal["local", "remote"]
MessageRole = Literal["human", "assistant"]
ExportKind = Literal["claude", "chatgpt"]

# ---------------------------------------------------------------------------
# Sessions and messages
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    result: str | None = None
    is_error: bool = False


class Message(BaseModel):
    """One turn of a conversation, independent of where it came from."""

    role: MessageRole
    text: str
    timestamp: datetime | None = None
    # True when the source had no timestamp and the import reference time was used
    timestamp_estimated: bool = False
    attachment_count: int = 0
    thinking: list[str] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list)


class Session(BaseModel):
    """Pointer record for a conversation.

    Native sessions only point at content the backend owns. Imported
    sessions own their content locally, in the artifact named by
    ``artifact_id``.
    """

    session_id: str
    title: str | None = None
    source: SessionSource = "native"
    content_owner: ContentOwner = "remote"
    source_id: str | None = None
    artifact_id: str | None = None
    summary: str | None = None
    continued_from: str | None = None
    archived: bool = False
    created_at: datetime
    last_accessed: datetime
    imported_at: datetime | None = None

    @property
    def imported(self) -> bool:
        return self.source != "native"


def source_for_kind(kind: ExportKind) -> SessionSource:
    return "claude-import" if kind == "claude" else "chatgpt-import"


def import_identity(kind: ExportKind, source_id: str) -> str:
    """Stable artifact id for an exported conversation: ``{source}-{id}``."""
    return f"{kind}-{source_id}"


# ---------------------------------------------------------------------------
# Stream states
# ---------------------------------------------------------------------------


class SessionResumeInfo(BaseModel):
    """How the backend re-attached to a session, as reported on ``session``."""

    method: str = "new"
    sdk_resume_failed: bool = False
    context_injected: bool = False
    messages_injected: int = 0


class ExchangeMetadata(BaseModel):
    session_id: str | None = None
    title: str | None = None
    model: str | None = None
    duration_ms: int | None = None
    resume_info: SessionResumeInfo | None = None


class SessionUnavailableInfo(BaseModel):
    session_id: str
    reason: str = "unknown"
    has_local_history: bool = False
    prior_message_count: int = 0
    message: str = "This session is no longer available on the server."
    pending_message: str | None = None


class IdleState(BaseModel):
    phase: Literal["idle"] = "idle"


class StreamingState(BaseModel):
    phase: Literal["streaming"] = "streaming"
    session_id: str | None = None
    title: str | None = None
    model: str | None = None
    available_tools: list[str] = Field(default_factory=list)
    partial_text: str = ""
    thinking: list[str] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list)
    resume_info: SessionResumeInfo | None = None
    pending_message: str | None = None


class CompletedState(BaseModel):
    phase: Literal["completed"] = "completed"
    final_message: Message
    metadata: ExchangeMetadata = Field(default_factory=ExchangeMetadata)


class AbortedState(BaseModel):
    phase: Literal["aborted"] = "aborted"
    partial_message: Message | None = None


class SessionUnavailableState(BaseModel):
    phase: Literal["session_unavailable"] = "session_unavailable"
    info: SessionUnavailableInfo


class ErrorState(BaseModel):
    phase: Literal["error"] = "error"
    message: str
    # Transport failures are retryable; backend-reported errors are not
    transient: bool = False


StreamState = Annotated[
    IdleState
    | StreamingState
    | CompletedState
    | AbortedState
    | SessionUnavailableState
    | ErrorState,
    Field(discriminator="phase"),
]

TERMINAL_PHASES = frozenset({"completed", "aborted", "session_unavailable", "error"})


def is_terminal(state: BaseModel) -> bool:
    return getattr(state, "phase", None) in TERMINAL_PHASES


# ---------------------------------------------------------------------------
# Import pipeline
# ---------------------------------------------------------------------------


class ImportScanResult(BaseModel):
    source: ExportKind
    conversation_count: int = 0
    non_empty_count: int = 0
    has_memories: bool = False
    memory_preview: str | None = None
    project_count: int = 0
    project_names: list[str] = Field(default_factory=list)
    oldest_date: datetime | None = None
    newest_date: datetime | None = None

    @classmethod
    def empty(cls, source: ExportKind) -> "ImportScanResult":
        return cls(source=source)


class ImportProgress(BaseModel):
    current_title: str = ""
    processed: int = 0
    total: int = 0
    phase: Literal["scanning", "importing", "complete", "error"]
    error: str | None = None

    @property
    def progress(self) -> float:
        return self.processed / self.total if self.total > 0 else 0.0

    @property
    def is_complete(self) -> bool:
        return self.phase == "complete"

    @property
    def has_error(self) -> bool:
        return self.phase == "error"


class ImportFailure(BaseModel):
    title: str
    artifact_id: str | None = None
    error: str


class ImportResult(BaseModel):
    conversations_imported: int = 0
    context_files_created: int = 0
    created_artifacts: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failures: list[ImportFailure] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Continuity decisions
# ---------------------------------------------------------------------------


class FreshSession(BaseModel):
    kind: Literal["fresh"] = "fresh"


class ResumeSession(BaseModel):
    kind: Literal["resume"] = "resume"
    session_id: str


class ContinueFromImported(BaseModel):
    kind: Literal["continue_from_imported"] = "continue_from_imported"
    original_session_id: str
    prior_messages: list[Message] = Field(default_factory=list)


class RecoveryNeeded(BaseModel):
    kind: Literal["recovery_needed"] = "recovery_needed"
    info: SessionUnavailableInfo


ContinuityDecision = Annotated[
    FreshSession | ResumeSession | ContinueFromImported | RecoveryNeeded,
    Field(discriminator="kind"),
]
