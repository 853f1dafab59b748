"""ChatController: the operations a chat UI drives.

It binds one session at a time, runs exchanges against the backend through
a StreamConsumer, and keeps pointer rows current as exchanges finish.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from datetime import datetime

from tether.backends.base import AgentBackend, SendOptions
from tether.chat.consumer import StreamConsumer
from tether.chat.continuity import Continuation, ContinuityManager, title_from_text
from tether.errors import (
    ExchangeInProgressError,
    InvalidStateError,
    ProtocolError,
    SendingDisabledError,
    TransportError,
)
from tether.models import (
    AbortedState,
    CompletedState,
    ContinueFromImported,
    ContinuityDecision,
    FreshSession,
    Message,
    RecoveryNeeded,
    ResumeSession,
    SessionUnavailableState,
    StreamingState,
    StreamState,
    is_terminal,
)
from tether.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class ChatController:
    def __init__(
        self,
        backend: AgentBackend,
        continuity: ContinuityManager,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._backend = backend
        self._continuity = continuity
        self._clock = clock
        self._consumer = StreamConsumer()

        self.session_id: str | None = None
        self.decision: ContinuityDecision = FreshSession()
        self.transcript: list[Message] = []
        self._continuation: Continuation | None = None
        self._prior_context_sent = False
        self._next_options: SendOptions | None = None
        self._pump: asyncio.Task | None = None

    @property
    def state(self) -> StreamState:
        return self._consumer.state

    @property
    def streaming(self) -> bool:
        return self._consumer.streaming

    @property
    def sending_enabled(self) -> bool:
        """False while an imported session is shown and not yet continued."""
        return not (isinstance(self.decision, ContinueFromImported) and self._continuation is None)

    def subscribe(self, listener: Callable[[StreamState], None]) -> Callable[[], None]:
        return self._consumer.subscribe(listener)

    # ------------------------------------------------------------------
    # Binding sessions
    # ------------------------------------------------------------------

    async def open_session(self, session_id: str | None) -> ContinuityDecision:
        """Bind ``session_id`` (None for a new conversation) and load its history."""
        if self.streaming:
            raise ExchangeInProgressError("Cannot switch sessions while streaming")

        decision = await self._continuity.decide(session_id)
        self._consumer.reset()
        self._continuation = None
        self._prior_context_sent = False
        self._next_options = None
        self.decision = decision

        if isinstance(decision, FreshSession):
            self.session_id = None
            self.transcript = []
        elif isinstance(decision, ResumeSession):
            self.session_id = decision.session_id
            self.transcript = await self._continuity.load_history(decision.session_id)
        elif isinstance(decision, ContinueFromImported):
            self.session_id = None
            self.transcript = list(decision.prior_messages)
        elif isinstance(decision, RecoveryNeeded):
            self.session_id = decision.info.session_id
            self.transcript = []
            self._consumer.mark_unavailable(decision.info)
        return decision

    async def continue_imported_session(self, session_id: str | None = None) -> Continuation:
        """Turn an imported session into a new, sendable native one.

        ``session_id`` defaults to the bound session; another id is opened first.
        The native session exists once the backend names it on the first reply.
        """
        if session_id is not None and not (
            isinstance(self.decision, ContinueFromImported)
            and self.decision.original_session_id == session_id
        ):
            await self.open_session(session_id)
        if not isinstance(self.decision, ContinueFromImported):
            raise InvalidStateError("The bound session is not an imported session")
        self._continuation = await self._continuity.continue_imported(
            self.decision.original_session_id
        )
        self._prior_context_sent = False
        self.session_id = None
        return self._continuation

    # ------------------------------------------------------------------
    # Exchanges
    # ------------------------------------------------------------------

    async def send(self, text: str) -> AsyncIterator[StreamState]:
        """Send a message. Returns the exchange's states, ending at a terminal one."""
        if not self.sending_enabled:
            raise SendingDisabledError("Continue the imported session before sending")
        if isinstance(self.state, SessionUnavailableState):
            raise InvalidStateError("Choose how to recover the unavailable session first")

        options = self._next_options or SendOptions()
        if self._continuation is not None and not self._prior_context_sent:
            options = options.model_copy(update={
                "prior_conversation": self._continuation.prior_conversation,
                "continued_from": self._continuation.original.session_id,
            })
        stream = self._start(text, options)
        self._next_options = None
        return stream

    async def abort(self) -> StreamState:
        """Stop the running exchange. The partial reply is kept."""
        pump = self._pump
        if not self.streaming or pump is None:
            return self.state

        session_id = self._live_session_id()
        pump.cancel()
        await asyncio.wait({pump})
        if session_id:
            await self._backend.abort(session_id)

        state = self._consumer.abort()
        await self._settle(state, session_id)
        return state

    async def resolve_session_unavailable(self, choice: str) -> AsyncIterator[StreamState]:
        """Apply a recovery choice; Idle first, then the re-sent message's states.

        ``inject_context`` retries on the same session and asks the backend to
        rebuild it from local history. ``fresh_start`` drops the session.
        """
        plan = self._consumer.resolve(choice)
        idle = self.state

        if plan.choice == "fresh_start":
            self.session_id = None
            self.transcript = []
            self.decision = FreshSession()
        else:
            self.session_id = plan.session_id
            self.decision = (
                ResumeSession(session_id=plan.session_id) if plan.session_id else FreshSession()
            )
        options = SendOptions(recovery_mode=plan.choice)

        if plan.pending_message is None:
            self._next_options = options
            return self._just(idle)
        return self._then(idle, self._start(plan.pending_message, options))

    def _start(self, text: str, options: SendOptions) -> AsyncIterator[StreamState]:
        queue: asyncio.Queue[StreamState] = asyncio.Queue()

        def listener(state: StreamState) -> None:
            queue.put_nowait(state)
            if is_terminal(state):
                unsubscribe()

        unsubscribe = self._consumer.subscribe(listener)
        try:
            self._consumer.begin(pending_message=text, session_id=self.session_id)
        except ExchangeInProgressError:
            unsubscribe()
            raise

        self.transcript.append(Message(role="human", text=text, timestamp=self._clock()))
        pump = asyncio.create_task(self._run(text, self.session_id, options))
        pump.add_done_callback(self._pump_done)
        self._pump = pump
        return self._observe(queue, pump)

    async def _observe(
        self, queue: asyncio.Queue[StreamState], pump: asyncio.Task
    ) -> AsyncIterator[StreamState]:
        while True:
            state = await queue.get()
            if is_terminal(state):
                # Let the pump finish persisting before the caller sees the end
                await asyncio.wait({pump})
                yield state
                return
            yield state

    async def _run(self, text: str, session_id: str | None, options: SendOptions) -> None:
        """Feed backend events to the consumer until the exchange ends."""
        bound = session_id
        try:
            async with aclosing(self._backend.send(session_id, text, options)) as events:
                async for event in events:
                    state = self._consumer.fold(event)
                    if isinstance(state, StreamingState) and state.session_id:
                        bound = state.session_id
                    if is_terminal(state):
                        break
        except TransportError as e:
            logger.warning("Exchange failed: %s", e)
            self._consumer.fail(str(e), transient=True)
        except ProtocolError as e:
            self._consumer.fail(str(e), transient=False)
        except Exception as e:
            logger.exception("Exchange failed unexpectedly")
            self._consumer.fail(str(e), transient=False)
        else:
            if self.streaming:
                self._consumer.fail("Stream ended before the reply finished", transient=True)

        await self._settle(self.state, bound)

    async def _settle(self, state: StreamState, session_id: str | None) -> None:
        """Record the outcome of a finished exchange."""
        if isinstance(state, CompletedState):
            self.transcript.append(state.final_message)
            bound = state.metadata.session_id or session_id
            if bound:
                await self._record(bound, state.metadata.title)
        elif isinstance(state, AbortedState):
            if state.partial_message is not None:
                self.transcript.append(state.partial_message)
            if session_id:
                await self._record(session_id, None)
        elif isinstance(state, SessionUnavailableState):
            # The pending message was never delivered; a retry re-appends it
            if self.transcript and self.transcript[-1].role == "human":
                self.transcript.pop()

    async def _record(self, session_id: str, title: str | None) -> None:
        first_human = next((m.text for m in self.transcript if m.role == "human"), "")
        fallback = title_from_text(first_human)
        continued_from = None
        if self._continuation is not None:
            continued_from = self._continuation.original.session_id
            fallback = self._continuation.original.title or fallback

        await self._continuity.record_native(
            session_id, title=title, fallback_title=fallback, continued_from=continued_from
        )
        self.session_id = session_id
        self.decision = ResumeSession(session_id=session_id)
        self._prior_context_sent = True

    @staticmethod
    def _pump_done(pump: asyncio.Task) -> None:
        if not pump.cancelled() and pump.exception() is not None:
            logger.error("Failed to record the finished exchange", exc_info=pump.exception())

    def _live_session_id(self) -> str | None:
        state = self.state
        if isinstance(state, StreamingState) and state.session_id:
            return state.session_id
        return self.session_id

    @staticmethod
    async def _just(state: StreamState) -> AsyncIterator[StreamState]:
        yield state

    @staticmethod
    async def _then(
        first: StreamState, rest: AsyncIterator[StreamState]
    ) -> AsyncIterator[StreamState]:
        yield first
        async for state in rest:
            yield state

    async def history(self) -> list[Message]:
        """Messages of the bound session, fetched from whichever side owns them."""
        if isinstance(self.decision, ContinueFromImported) and self.session_id is None:
            return list(self.decision.prior_messages)
        if self.session_id is None:
            return list(self.transcript)
        return await self._continuity.load_history(self.session_id)
