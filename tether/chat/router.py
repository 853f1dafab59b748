"""Chat and session API routes."""

import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from tether.chat.schemas import (
    ArchiveRequest,
    ContinueSessionResponse,
    OpenSessionRequest,
    OpenSessionResponse,
    RecoverRequest,
    SendMessageRequest,
)
from tether.chat.service import ChatController
from tether.errors import (
    ExchangeInProgressError,
    InvalidStateError,
    SendingDisabledError,
    SessionNotFoundError,
    TransportError,
)
from tether.models import ErrorState, Message, Session, StreamState
from tether.storage.vault import VaultStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

_SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


def get_chat_controller() -> ChatController:
    """Dependency placeholder, overridden at startup."""
    raise RuntimeError("ChatController not configured")


def get_vault_storage() -> VaultStorage:
    """Dependency placeholder, overridden at startup."""
    raise RuntimeError("VaultStorage not configured")


# -- Sessions --


@router.get("/sessions")
async def list_sessions(
    include_archived: bool = Query(False),
    storage: VaultStorage = Depends(get_vault_storage),
) -> list[Session]:
    return await storage.list_sessions(include_archived=include_archived)


@router.post("/sessions/open")
async def open_session(
    request: OpenSessionRequest,
    controller: ChatController = Depends(get_chat_controller),
) -> OpenSessionResponse:
    """Bind a session (or a new one) and return how it can be continued."""
    try:
        decision = await controller.open_session(request.session_id)
    except ExchangeInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except TransportError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return OpenSessionResponse(
        decision=decision,
        messages=controller.transcript,
        sending_enabled=controller.sending_enabled,
    )


@router.get("/sessions/current/messages")
async def current_messages(
    controller: ChatController = Depends(get_chat_controller),
) -> list[Message]:
    try:
        return await controller.history()
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except TransportError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


@router.post("/sessions/{session_id}/continue")
async def continue_session(
    session_id: str,
    controller: ChatController = Depends(get_chat_controller),
) -> ContinueSessionResponse:
    """Continue an imported session in a new native session."""
    try:
        continuation = await controller.continue_imported_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (InvalidStateError, ExchangeInProgressError) as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except TransportError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return ContinueSessionResponse(
        original_session_id=continuation.original.session_id,
        prior_message_count=len(continuation.prior_messages),
        prior_context_chars=len(continuation.prior_conversation),
        sending_enabled=controller.sending_enabled,
    )


@router.post("/sessions/{session_id}/archive")
async def archive_session(
    session_id: str,
    request: ArchiveRequest,
    storage: VaultStorage = Depends(get_vault_storage),
) -> Session:
    try:
        return await storage.set_archived(session_id, request.archived)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


# -- Exchanges --


@router.get("/chat/state")
async def chat_state(controller: ChatController = Depends(get_chat_controller)) -> dict:
    return controller.state.model_dump(mode="json")


@router.post("/chat/send")
async def send_message(
    request: SendMessageRequest,
    controller: ChatController = Depends(get_chat_controller),
) -> StreamingResponse:
    """Send a message; streams every state of the exchange as SSE."""
    try:
        states = await controller.send(request.message)
    except (ExchangeInProgressError, InvalidStateError, SendingDisabledError) as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return StreamingResponse(
        _stream_states(states), media_type="text/event-stream", headers=_SSE_HEADERS
    )


@router.post("/chat/abort")
async def abort_exchange(controller: ChatController = Depends(get_chat_controller)) -> dict:
    state = await controller.abort()
    return state.model_dump(mode="json")


@router.post("/chat/recover")
async def recover_session(
    request: RecoverRequest,
    controller: ChatController = Depends(get_chat_controller),
) -> StreamingResponse:
    """Resolve a session-unavailable condition and re-send the pending message."""
    try:
        states = await controller.resolve_session_unavailable(request.choice)
    except (InvalidStateError, ExchangeInProgressError) as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return StreamingResponse(
        _stream_states(states), media_type="text/event-stream", headers=_SSE_HEADERS
    )


async def _stream_states(states: AsyncIterator[StreamState]) -> AsyncIterator[str]:
    """Async generator that yields SSE-formatted state snapshots."""
    try:
        async for state in states:
            yield f"event: {state.phase}\ndata: {state.model_dump_json()}\n\n"
    except Exception as e:
        logger.exception("Exchange stream failed")
        error = ErrorState(message=str(e), transient=False)
        yield f"event: error\ndata: {error.model_dump_json()}\n\n"
