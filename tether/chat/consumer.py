"""StreamConsumer: folds the backend's event stream into exchange state.

One consumer tracks one exchange at a time:

    Idle --begin--> Streaming --done--> Completed
                              --aborted / abort()--> Aborted
                              --session_unavailable--> SessionUnavailable
                              --error / fail()--> Error

Terminal states stay until the next ``begin`` (or ``reset``/``resolve``).
Every state is a fresh snapshot; observers never see one mutate.
"""

import logging
from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel

from tether.chat.events import StreamEvent
from tether.errors import ExchangeInProgressError, InvalidStateError
from tether.models import (
    AbortedState,
    CompletedState,
    ErrorState,
    ExchangeMetadata,
    IdleState,
    Message,
    SessionUnavailableInfo,
    SessionUnavailableState,
    StreamingState,
    StreamState,
)
from tether.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

RecoveryChoice = Literal["inject_context", "fresh_start"]
RECOVERY_CHOICES: frozenset[str] = frozenset({"inject_context", "fresh_start"})

StateListener = Callable[[StreamState], None]


class RecoveryPlan(BaseModel):
    """What to send after the user picks a recovery option."""

    choice: RecoveryChoice
    # None for fresh_start: the next send opens a new backend session
    session_id: str | None
    pending_message: str | None


class StreamConsumer:
    def __init__(self) -> None:
        self._state: StreamState = IdleState()
        self._listeners: list[StateListener] = []
        self._last_kind: str | None = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def streaming(self) -> bool:
        return isinstance(self._state, StreamingState)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with every new state. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, state: StreamState) -> StreamState:
        self._state = state
        for listener in list(self._listeners):
            listener(state)
        return state

    # ------------------------------------------------------------------
    # Transitions driven by the caller
    # ------------------------------------------------------------------

    def begin(self, pending_message: str | None = None, session_id: str | None = None) -> StreamState:
        """Start an exchange. Refused while another one is streaming."""
        if self.streaming:
            raise ExchangeInProgressError("An exchange is already streaming")
        self._last_kind = None
        return self._set(StreamingState(session_id=session_id, pending_message=pending_message))

    def abort(self) -> StreamState:
        """End the current exchange as aborted, keeping any partial reply."""
        if not isinstance(self._state, StreamingState):
            return self._state
        return self._set(AbortedState(partial_message=self._partial_message(self._state)))

    def fail(self, message: str, transient: bool = True) -> StreamState:
        """End the current exchange with an error raised outside the stream."""
        if not isinstance(self._state, StreamingState):
            return self._state
        return self._set(ErrorState(message=message, transient=transient))

    def mark_unavailable(self, info: SessionUnavailableInfo) -> StreamState:
        """Enter SessionUnavailable without an exchange, e.g. when opening a session."""
        if self.streaming:
            raise ExchangeInProgressError("An exchange is already streaming")
        return self._set(SessionUnavailableState(info=info))

    def resolve(self, choice: str) -> RecoveryPlan:
        """Leave SessionUnavailable with the user's recovery choice."""
        state = self._state
        if not isinstance(state, SessionUnavailableState):
            raise InvalidStateError(f"Nothing to recover from in state {state.phase!r}")
        if choice not in RECOVERY_CHOICES:
            raise ValueError(f"Unknown recovery choice: {choice!r}")

        plan = RecoveryPlan(
            choice=choice,
            session_id=state.info.session_id if choice == "inject_context" else None,
            pending_message=state.info.pending_message,
        )
        self._set(IdleState())
        return plan

    def reset(self) -> StreamState:
        if self.streaming:
            raise ExchangeInProgressError("Cannot reset while streaming")
        return self._set(IdleState())

    # ------------------------------------------------------------------
    # Folding backend events
    # ------------------------------------------------------------------

    def fold(self, event: StreamEvent) -> StreamState:
        """Apply one event. Events outside Streaming and unknown kinds are ignored."""
        state = self._state
        if not isinstance(state, StreamingState):
            logger.debug("Ignoring %s event in state %s", event.kind, state.phase)
            return state

        if not event.known:
            logger.debug("Ignoring unknown event kind %r", event.kind)
            return state

        new_state = _HANDLERS[event.kind](self, state, event)
        self._last_kind = event.kind
        if new_state is state:
            return state
        return self._set(new_state)

    def _on_session(self, state: StreamingState, event: StreamEvent) -> StreamState:
        return state.model_copy(update={
            "session_id": event.session_id or state.session_id,
            "title": event.title or state.title,
            "resume_info": event.resume_info or state.resume_info,
        })

    def _on_init(self, state: StreamingState, event: StreamEvent) -> StreamState:
        return state.model_copy(update={
            "available_tools": event.tools,
            "session_id": event.session_id or state.session_id,
            "model": event.model or state.model,
        })

    def _on_model(self, state: StreamingState, event: StreamEvent) -> StreamState:
        return state.model_copy(update={"model": event.model or state.model})

    def _on_text(self, state: StreamingState, event: StreamEvent) -> StreamState:
        return state.model_copy(update={"partial_text": state.partial_text + event.content})

    def _on_thinking(self, state: StreamingState, event: StreamEvent) -> StreamState:
        # Consecutive thinking deltas extend the same block
        thinking = list(state.thinking)
        if thinking and self._last_kind == "thinking":
            thinking[-1] += event.content
        else:
            thinking.append(event.content)
        return state.model_copy(update={"thinking": thinking})

    def _on_tool_use(self, state: StreamingState, event: StreamEvent) -> StreamState:
        tool_call = event.tool_call
        if tool_call is None:
            logger.debug("tool_use event without a tool id")
            return state
        return state.model_copy(update={"tool_calls": [*state.tool_calls, tool_call]})

    def _on_tool_result(self, state: StreamingState, event: StreamEvent) -> StreamState:
        tool_calls = list(state.tool_calls)
        for i, call in enumerate(tool_calls):
            if call.id == event.tool_use_id:
                tool_calls[i] = call.model_copy(
                    update={"result": event.content, "is_error": event.is_error}
                )
                return state.model_copy(update={"tool_calls": tool_calls})
        logger.debug("tool_result for unknown tool call %r", event.tool_use_id)
        return state

    def _on_done(self, state: StreamingState, event: StreamEvent) -> StreamState:
        return CompletedState(
            final_message=self._message(state),
            metadata=ExchangeMetadata(
                session_id=event.session_id or state.session_id,
                title=event.title or state.title,
                model=event.model or state.model,
                duration_ms=event.duration_ms,
                resume_info=state.resume_info,
            ),
        )

    def _on_aborted(self, state: StreamingState, event: StreamEvent) -> StreamState:
        return AbortedState(partial_message=self._partial_message(state))

    def _on_session_unavailable(self, state: StreamingState, event: StreamEvent) -> StreamState:
        info = SessionUnavailableInfo(
            session_id=event.session_id or state.session_id or "",
            reason=event.reason or "unknown",
            has_local_history=event.has_markdown_history,
            prior_message_count=event.message_count,
            pending_message=state.pending_message,
        )
        if event.message:
            info.message = event.message
        return SessionUnavailableState(info=info)

    def _on_error(self, state: StreamingState, event: StreamEvent) -> StreamState:
        return ErrorState(message=event.error, transient=False)

    @staticmethod
    def _message(state: StreamingState) -> Message:
        return Message(
            role="assistant",
            text=state.partial_text,
            timestamp=utcnow(),
            thinking=list(state.thinking),
            tool_calls=list(state.tool_calls),
        )

    @classmethod
    def _partial_message(cls, state: StreamingState) -> Message | None:
        if not (state.partial_text or state.thinking or state.tool_calls):
            return None
        return cls._message(state)


_HANDLERS: dict[str, Callable[[StreamConsumer, StreamingState, StreamEvent], StreamState]] = {
    "session": StreamConsumer._on_session,
    "init": StreamConsumer._on_init,
    "model": StreamConsumer._on_model,
    "text": StreamConsumer._on_text,
    "thinking": StreamConsumer._on_thinking,
    "tool_use": StreamConsumer._on_tool_use,
    "tool_result": StreamConsumer._on_tool_result,
    "done": StreamConsumer._on_done,
    "aborted": StreamConsumer._on_aborted,
    "session_unavailable": StreamConsumer._on_session_unavailable,
    "error": StreamConsumer._on_error,
}
