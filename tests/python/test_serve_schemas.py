"""Tests for the generation server schemas."""

import uuid

import pytest
from pydantic import ValidationError

from musegen_core.constants import MAX_DURATION_SECS, SAMPLE_RATE
from musegen_serve.schemas import (
    AiChatEntry,
    HealthResponse,
    InfoResponse,
    UserChatEntry,
    WSAbortRequest,
    WSErrorMessage,
    WSGenerateRequest,
    WSHistoryMessage,
    WSHistoryRequest,
    WSInitMessage,
    WSProgressMessage,
    WSResultMessage,
    WSStartMessage,
)

JOB_ID = "0b7c54a4-1f5e-4c0e-9d36-1f0a3c2c9a11"
CHAT_ID = "5d1e0c2a-8a43-4b8f-b1f4-2f2d4e6b7c90"


class TestClientMessages:
    def test_generate(self):
        req = WSGenerateRequest.model_validate(
            {"type": "generate", "id": JOB_ID, "chat_id": CHAT_ID, "prompt": "jazz", "secs": 5},
        )
        assert req.id == uuid.UUID(JOB_ID)
        assert req.chat_id == uuid.UUID(CHAT_ID)
        assert req.prompt == "jazz"
        assert req.secs == 5

    def test_generate_prompt_optional(self):
        req = WSGenerateRequest(id=JOB_ID, chat_id=CHAT_ID, secs=1)
        assert req.prompt == ""

    def test_generate_secs_bounds(self):
        with pytest.raises(ValidationError):
            WSGenerateRequest(id=JOB_ID, chat_id=CHAT_ID, secs=0)
        with pytest.raises(ValidationError):
            WSGenerateRequest(id=JOB_ID, chat_id=CHAT_ID, secs=MAX_DURATION_SECS + 1)

    def test_generate_requires_ids(self):
        with pytest.raises(ValidationError):
            WSGenerateRequest.model_validate({"type": "generate", "chat_id": CHAT_ID, "secs": 5})
        with pytest.raises(ValidationError):
            WSGenerateRequest.model_validate({"type": "generate", "id": JOB_ID, "secs": 5})

    @pytest.mark.parametrize("bad_id", ["", "X", "../../escaped", "a/b", f"{JOB_ID}/.."])
    def test_generate_rejects_non_uuid_id(self, bad_id):
        with pytest.raises(ValidationError):
            WSGenerateRequest(id=bad_id, chat_id=CHAT_ID, secs=5)
        with pytest.raises(ValidationError):
            WSGenerateRequest(id=JOB_ID, chat_id=bad_id, secs=5)

    def test_generate_wrong_type(self):
        with pytest.raises(ValidationError):
            WSGenerateRequest.model_validate(
                {"type": "abort", "id": JOB_ID, "chat_id": CHAT_ID, "secs": 5},
            )

    def test_abort(self):
        assert WSAbortRequest(id=JOB_ID, chat_id=CHAT_ID).type == "abort"

    def test_abort_rejects_non_uuid_id(self):
        with pytest.raises(ValidationError):
            WSAbortRequest(id="../x", chat_id=CHAT_ID)

    def test_history(self):
        req = WSHistoryRequest.model_validate({"type": "history", "chat_id": CHAT_ID})
        assert req.chat_id == uuid.UUID(CHAT_ID)
        with pytest.raises(ValidationError):
            WSHistoryRequest(chat_id="../../etc")


class TestServerMessages:
    def test_init(self):
        assert WSInitMessage(model="MusicGen", device="Cpu").model_dump() == {
            "type": "init", "model": "MusicGen", "device": "Cpu",
        }

    def test_start(self):
        assert WSStartMessage(id="a", chat_id="c", prompt="p", secs=3).model_dump() == {
            "type": "start", "id": "a", "chat_id": "c", "prompt": "p", "secs": 3,
        }

    def test_progress_bounds(self):
        assert WSProgressMessage(id="a", progress=1.0).progress == 1.0
        with pytest.raises(ValidationError):
            WSProgressMessage(id="a", progress=1.5)

    def test_result(self):
        msg = WSResultMessage(id="a", relpath="audios/a.wav", duration_sec=2.0)
        assert msg.model_dump()["type"] == "result"

    def test_error_without_id(self):
        assert WSErrorMessage(error="Invalid JSON").model_dump() == {
            "type": "error", "id": None, "chat_id": None, "error": "Invalid JSON",
        }

    def test_history_entries_discriminated(self):
        msg = WSHistoryMessage.model_validate({
            "chat_id": CHAT_ID,
            "entries": [
                {"type": "user", "id": JOB_ID, "chat_id": CHAT_ID, "text": "jazz"},
                {"type": "ai", "id": JOB_ID, "chat_id": CHAT_ID, "relpath": "audios/x.wav"},
            ],
        })
        assert isinstance(msg.entries[0], UserChatEntry)
        assert isinstance(msg.entries[1], AiChatEntry)
        assert msg.model_dump()["entries"][1] == {
            "type": "ai", "id": JOB_ID, "chat_id": CHAT_ID, "relpath": "audios/x.wav", "error": "",
        }


class TestHttpSchemas:
    def test_health_defaults(self):
        resp = HealthResponse()
        assert resp.status == "ok"
        assert not resp.models_loaded
        assert not resp.queue_running

    def test_info_defaults(self):
        info = InfoResponse(model="MusicGen", device="Cpu")
        assert info.max_secs == MAX_DURATION_SECS
        assert info.sample_rate == SAMPLE_RATE
