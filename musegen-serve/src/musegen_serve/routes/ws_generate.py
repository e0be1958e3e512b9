"""WebSocket /ws endpoint: submit and abort generation jobs, fetch chat history."""

from __future__ import annotations

import asyncio
import json
import logging
import queue as stdlib_queue

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from musegen_serve.backend import GenerationRequest
from musegen_serve.history import job_key
from musegen_serve.schemas import (
    WSAbortRequest,
    WSErrorMessage,
    WSGenerateRequest,
    WSHistoryMessage,
    WSHistoryRequest,
    WSInitMessage,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def generate_websocket(ws: WebSocket) -> None:
    """WebSocket endpoint for music generation.

    Protocol:
    - ``generate`` -- queue a job ``{id, chat_id, prompt, secs}``
    - ``abort``    -- cancel a queued or running job by ``{id, chat_id}``
    - ``history``  -- fetch the stored entries of ``chat_id``

    The server opens with an ``init`` message. Every connected client then
    receives ``start``/``progress``/``result``/``error`` messages for every
    job.
    """
    from fastapi import HTTPException

    from musegen_serve.app import get_backend, get_fanout, get_history, get_processor

    await ws.accept()

    async def _send(msg: dict) -> None:
        """Helper to send JSON, silently ignoring closed connections."""
        try:
            await ws.send_json(msg)
        except Exception:
            pass

    try:
        backend = get_backend()
        fanout = get_fanout()
        history = get_history()
        processor = get_processor()
    except HTTPException as e:
        await _send(WSErrorMessage(error=str(e.detail)).model_dump())
        await ws.close()
        return

    listener = fanout.listen()
    logger.info("WebSocket client connected")
    await _send(WSInitMessage(model=processor.name, device=processor.device).model_dump())

    # ------------------------------------------------------------------
    # Receiver task -- reads client messages and dispatches
    # ------------------------------------------------------------------
    async def receiver() -> None:
        loop = asyncio.get_running_loop()
        try:
            while True:
                data = await ws.receive_text()
                try:
                    msg = json.loads(data)
                except json.JSONDecodeError:
                    await _send(WSErrorMessage(error="Invalid JSON").model_dump())
                    continue
                if not isinstance(msg, dict):
                    await _send(WSErrorMessage(error="Expected a JSON object").model_dump())
                    continue

                msg_type = msg.get("type")
                try:
                    if msg_type == "generate":
                        req = WSGenerateRequest.model_validate(msg)
                        backend.submit(GenerationRequest(
                            id=job_key(str(req.chat_id), str(req.id)),
                            prompt=req.prompt,
                            secs=req.secs,
                        ))
                    elif msg_type == "abort":
                        req = WSAbortRequest.model_validate(msg)
                        backend.cancel(job_key(str(req.chat_id), str(req.id)))
                    elif msg_type == "history":
                        req = WSHistoryRequest.model_validate(msg)
                        chat_id = str(req.chat_id)
                        entries = await loop.run_in_executor(None, history.load, chat_id)
                        await _send(
                            WSHistoryMessage(chat_id=chat_id, entries=entries).model_dump(),
                        )
                    else:
                        await _send(
                            WSErrorMessage(error=f"Unknown message type: {msg_type}").model_dump(),
                        )
                except ValidationError as e:
                    errors = "; ".join(
                        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                        for err in e.errors()
                    )
                    await _send(WSErrorMessage(error=f"Invalid {msg_type} request: {errors}").model_dump())

        except WebSocketDisconnect:
            pass

    # ------------------------------------------------------------------
    # Forwarder task -- relays backend messages to this client
    # ------------------------------------------------------------------
    async def forwarder() -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                msg = await loop.run_in_executor(
                    None,
                    lambda: listener.get(timeout=0.05),
                )
            except stdlib_queue.Empty:
                continue
            await _send(msg)

    forwarder_task = asyncio.create_task(forwarder())
    try:
        await receiver()
    finally:
        forwarder_task.cancel()
        try:
            await forwarder_task
        except asyncio.CancelledError:
            pass
        fanout.unlisten(listener)
        logger.info("WebSocket client disconnected")
