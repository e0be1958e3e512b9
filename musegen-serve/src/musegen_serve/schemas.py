"""Pydantic schemas for the generation API."""

from __future__ import annotations

import uuid
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from musegen_core.constants import MAX_DURATION_SECS, MIN_DURATION_SECS, SAMPLE_RATE


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "ok"
    models_loaded: bool = False
    queue_running: bool = False


class InfoResponse(BaseModel):
    """Response for GET /info."""

    model: str = ""
    device: str = ""
    max_secs: int = MAX_DURATION_SECS
    sample_rate: int = SAMPLE_RATE


# ---------------------------------------------------------------------------
# Chat history entries
# ---------------------------------------------------------------------------


class UserChatEntry(BaseModel):
    """A prompt the user submitted."""

    type: Literal["user"] = "user"
    id: str
    chat_id: str
    text: str = ""


class AiChatEntry(BaseModel):
    """The outcome of a job: ``relpath`` on success, ``error`` otherwise."""

    type: Literal["ai"] = "ai"
    id: str
    chat_id: str
    relpath: str = ""
    error: str = ""


ChatEntry = Annotated[Union[UserChatEntry, AiChatEntry], Field(discriminator="type")]


# ---------------------------------------------------------------------------
# WebSocket schemas
# ---------------------------------------------------------------------------

# Client → Server


class WSGenerateRequest(BaseModel):
    """Client → Server: queue a generation job."""

    type: Literal["generate"] = "generate"
    id: uuid.UUID
    chat_id: uuid.UUID
    prompt: str = Field("", max_length=2000)
    secs: int = Field(..., ge=MIN_DURATION_SECS, le=MAX_DURATION_SECS)


class WSAbortRequest(BaseModel):
    """Client → Server: cancel a queued or running job."""

    type: Literal["abort"] = "abort"
    id: uuid.UUID
    chat_id: uuid.UUID


class WSHistoryRequest(BaseModel):
    """Client → Server: fetch the stored entries of one chat."""

    type: Literal["history"] = "history"
    chat_id: uuid.UUID


# Server → Client


class WSInitMessage(BaseModel):
    """Server → Client: sent once on connect."""

    type: str = "init"
    model: str = ""
    device: str = ""


class WSStartMessage(BaseModel):
    """Server → Client: a job left the queue and started decoding."""

    type: str = "start"
    id: str
    chat_id: str | None = None
    prompt: str = ""
    secs: int = 0


class WSProgressMessage(BaseModel):
    """Server → Client: decoded fraction of a running job."""

    type: str = "progress"
    id: str
    chat_id: str | None = None
    progress: float = Field(0.0, ge=0.0, le=1.0)


class WSResultMessage(BaseModel):
    """Server → Client: audio is ready at ``relpath``."""

    type: str = "result"
    id: str
    chat_id: str | None = None
    relpath: str
    duration_sec: float = 0.0


class WSErrorMessage(BaseModel):
    """Server → Client: a job failed, or a client message was rejected."""

    type: str = "error"
    id: str | None = None
    chat_id: str | None = None
    error: str = ""


class WSHistoryMessage(BaseModel):
    """Server → Client: entries of one chat, oldest first."""

    type: str = "history"
    chat_id: str
    entries: list[ChatEntry] = Field(default_factory=list)
