"""AgentBackend over HTTP: JSON endpoints plus an SSE chat stream."""

import logging
from collections.abc import AsyncIterator

import httpx

from tether.backends.base import AgentBackend, ResumeOutcome, SendOptions
from tether.chat.events import StreamEvent
from tether.errors import ProtocolError, SessionNotFoundError, TransportError
from tether.models import Message
from tether.utils.timestamps import parse_iso

logger = logging.getLogger(__name__)

_ROLES = {"user": "human", "human": "human", "assistant": "assistant"}


class HttpBackend(AgentBackend):
    def __init__(
        self,
        base_url: str,
        *,
        request_timeout: float = 30.0,
        stream_timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        # stream_timeout bounds the wait for each chunk, not the whole reply
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(request_timeout, read=stream_timeout),
            transport=transport,
        )

    async def resume(self, session_id: str) -> ResumeOutcome:
        try:
            response = await self._client.get(f"/api/chat/{session_id}/resume")
        except httpx.HTTPError as e:
            logger.warning("Resume check for %s failed: %s", session_id, e)
            raise TransportError(f"Backend unreachable: {e}") from e

        if response.status_code == 404:
            return ResumeOutcome(session_id=session_id, available=False, reason="not_found")
        self._raise_for_status(response)

        data = response.json()
        return ResumeOutcome(
            session_id=session_id,
            available=bool(data.get("available")),
            reason=data.get("reason"),
            has_local_history=bool(data.get("hasMarkdownHistory")),
            message_count=int(data.get("messageCount") or 0),
            message=data.get("message"),
        )

    async def send(
        self,
        session_id: str | None,
        message: str,
        options: SendOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        payload: dict = {"message": message}
        if session_id:
            payload["sessionId"] = session_id
        if options is not None:
            if options.prior_conversation:
                payload["priorConversation"] = options.prior_conversation
            if options.continued_from:
                payload["continuedFrom"] = options.continued_from
            if options.recovery_mode:
                payload["recoveryMode"] = options.recovery_mode
            if options.contexts is not None:
                payload["contexts"] = options.contexts

        try:
            async with self._client.stream(
                "POST",
                "/api/chat",
                json=payload,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.status_code != 200:
                    await response.aread()
                    detail = f"Backend returned {response.status_code}: {response.text[:200]}"
                    # A rejected request will be rejected again; only 5xx is retryable
                    if 400 <= response.status_code < 500:
                        raise ProtocolError(detail)
                    raise TransportError(detail)
                async for line in response.aiter_lines():
                    event = StreamEvent.parse(line)
                    if event is not None:
                        yield event
        except httpx.HTTPError as e:
            logger.warning("Chat stream failed: %s", e)
            raise TransportError(f"Stream interrupted: {e}") from e

    async def abort(self, session_id: str) -> bool:
        try:
            response = await self._client.post(f"/api/chat/{session_id}/abort")
        except httpx.HTTPError as e:
            logger.warning("Abort for %s failed: %s", session_id, e)
            return False
        return response.status_code == 200

    async def fetch_messages(self, session_id: str) -> list[Message]:
        try:
            response = await self._client.get(f"/api/chat/{session_id}")
        except httpx.HTTPError as e:
            raise TransportError(f"Backend unreachable: {e}") from e
        if response.status_code == 404:
            raise SessionNotFoundError(session_id)
        self._raise_for_status(response)

        messages: list[Message] = []
        for item in response.json().get("messages", []):
            role = _ROLES.get(item.get("role", ""))
            if role is None:
                continue
            content = item.get("content")
            messages.append(Message(
                role=role,
                text=content if isinstance(content, str) else "",
                timestamp=parse_iso(item.get("timestamp")),
            ))
        return messages

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code != 200:
            raise TransportError(f"Backend returned {response.status_code}")
