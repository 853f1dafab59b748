"""Pydantic schemas for the chat and session API."""

from typing import Literal

from pydantic import BaseModel, Field

from tether.models import ContinuityDecision, Message


class OpenSessionRequest(BaseModel):
    session_id: str | None = None


class OpenSessionResponse(BaseModel):
    decision: ContinuityDecision
    messages: list[Message]
    sending_enabled: bool


class ContinueSessionResponse(BaseModel):
    original_session_id: str
    prior_message_count: int
    prior_context_chars: int
    sending_enabled: bool


class SendMessageRequest(BaseModel):
    message: str = Field(min_length=1)


class RecoverRequest(BaseModel):
    choice: Literal["inject_context", "fresh_start"]


class ArchiveRequest(BaseModel):
    archived: bool = True
