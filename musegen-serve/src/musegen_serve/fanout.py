"""Backend events → client messages, broadcast to every connected client.

A single thread drains the backend subscription, stores finished audio as
WAV under the audio directory (once, however many clients are connected),
records prompts and outcomes in the chat history, and fans the resulting
JSON-ready dicts out to per-client queues.
"""

from __future__ import annotations

import logging
import queue
import threading
from pathlib import Path

from musegen_core.audio import write_wav
from musegen_core.constants import SAMPLE_RATE
from musegen_serve.backend import (
    GenerationBackend,
    JobCompleted,
    JobEvent,
    JobFailed,
    JobProgress,
    JobStarted,
)
from musegen_serve.history import ChatHistory, split_job_key
from musegen_serve.schemas import (
    AiChatEntry,
    UserChatEntry,
    WSErrorMessage,
    WSProgressMessage,
    WSResultMessage,
    WSStartMessage,
)

logger = logging.getLogger(__name__)

AUDIO_SUBDIR = "audios"


def _record(history: ChatHistory | None, entry: UserChatEntry | AiChatEntry | None) -> None:
    if history is None or entry is None:
        return
    try:
        history.save(entry)
    except (OSError, ValueError) as e:
        logger.warning("Could not record chat entry %s: %s", entry.id, e)


def _ai_entry(chat_id: str | None, job_id: str, **fields) -> AiChatEntry | None:
    if chat_id is None:
        return None
    return AiChatEntry(id=job_id, chat_id=chat_id, **fields)


def audio_path(data_dir: Path, job_id: str) -> Path:
    """Resolved WAV path for *job_id*; ``ValueError`` if it leaves the audio directory."""
    audio_dir = (Path(data_dir) / AUDIO_SUBDIR).resolve()
    path = (audio_dir / f"{job_id}.wav").resolve()
    if path.parent != audio_dir:
        raise ValueError(f"Invalid job id: {job_id!r}")
    return path


def event_to_message(
    event: JobEvent,
    data_dir: Path,
    sample_rate: int = SAMPLE_RATE,
    history: ChatHistory | None = None,
) -> dict:
    """Convert one backend event into a client message.

    Completed jobs are written to ``<data_dir>/audios/<id>.wav``; if that
    fails, or the id would place the file anywhere else, the client gets an
    error instead of a result. Jobs whose id is a chat key (see
    :func:`musegen_serve.history.job_key`) are recorded in *history*.
    """
    if isinstance(event, JobStarted):
        req = event.request
        chat_id, job_id = split_job_key(req.id)
        if chat_id is not None:
            _record(history, UserChatEntry(id=job_id, chat_id=chat_id, text=req.prompt))
        return WSStartMessage(
            id=job_id, chat_id=chat_id, prompt=req.prompt, secs=req.secs,
        ).model_dump()

    if not isinstance(event, (JobProgress, JobFailed, JobCompleted)):
        raise TypeError(f"Unknown backend event: {event!r}")
    chat_id, job_id = split_job_key(event.id)

    if isinstance(event, JobProgress):
        return WSProgressMessage(id=job_id, chat_id=chat_id, progress=event.progress).model_dump()

    if isinstance(event, JobFailed):
        _record(history, _ai_entry(chat_id, job_id, error=event.reason))
        return WSErrorMessage(id=job_id, chat_id=chat_id, error=event.reason).model_dump()

    relpath = f"{AUDIO_SUBDIR}/{job_id}.wav"
    try:
        write_wav(audio_path(data_dir, job_id), event.samples, sample_rate)
    except Exception as e:
        logger.error("Could not store audio for %s: %s", job_id, e)
        _record(history, _ai_entry(chat_id, job_id, error=str(e)))
        return WSErrorMessage(id=job_id, chat_id=chat_id, error=str(e)).model_dump()
    _record(history, _ai_entry(chat_id, job_id, relpath=relpath))
    return WSResultMessage(
        id=job_id,
        chat_id=chat_id,
        relpath=relpath,
        duration_sec=len(event.samples) / sample_rate,
    ).model_dump()


class MessageFanout:
    """Broadcasts converted backend events to any number of listeners."""

    def __init__(
        self,
        backend: GenerationBackend,
        data_dir: Path,
        sample_rate: int = SAMPLE_RATE,
        history: ChatHistory | None = None,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.sample_rate = sample_rate
        self.history = history if history is not None else ChatHistory(self.data_dir)
        self._subscription = backend.subscribe()
        self._listeners: list[queue.Queue[dict]] = []
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._loop, name="musegen-fanout", daemon=True,
        )

    def start(self) -> MessageFanout:
        self._thread.start()
        return self

    def stop(self, timeout: float | None = 1.0) -> None:
        self._stopped.set()
        self._subscription.close()
        self._thread.join(timeout)

    def listen(self) -> queue.Queue[dict]:
        listener: queue.Queue[dict] = queue.Queue()
        with self._lock:
            self._listeners.append(listener)
        return listener

    def unlisten(self, listener: queue.Queue[dict]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _loop(self) -> None:
        while not self._stopped.is_set():
            try:
                event = self._subscription.get(timeout=0.1)
            except queue.Empty:
                continue
            msg = event_to_message(event, self.data_dir, self.sample_rate, self.history)
            with self._lock:
                listeners = list(self._listeners)
            for listener in listeners:
                listener.put_nowait(msg)
