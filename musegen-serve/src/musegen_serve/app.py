"""FastAPI application for the musegen server.

Endpoints:
- WS   /ws              Submit/abort generation jobs, fetch chat history, receive progress and results
- GET  /audios/{name}   Download a generated WAV file
- GET  /info            Model and device information
- GET  /health          Health check
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException

from musegen_core.constants import SAMPLE_RATE
from musegen_core.pipeline import JobProcessor
from musegen_serve.backend import GenerationBackend
from musegen_serve.fanout import MessageFanout
from musegen_serve.history import ChatHistory

logger = logging.getLogger(__name__)

# Global state (initialized by init_app / init_backend)
_processor: JobProcessor | None = None
_backend: GenerationBackend | None = None
_fanout: MessageFanout | None = None
_history: ChatHistory | None = None
_data_dir: Path = Path("musegen-data")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    shutdown_backend()


app = FastAPI(
    title="musegen server",
    description="Text-to-music generation with a cancellable, progress-streaming job queue.",
    version="0.1.0",
    lifespan=lifespan,
)


def get_processor() -> JobProcessor:
    if _processor is None:
        raise HTTPException(status_code=503, detail="Models not loaded.")
    return _processor


def get_backend() -> GenerationBackend:
    if _backend is None or not _backend.running:
        raise HTTPException(status_code=503, detail="Generation backend not running.")
    return _backend


def get_fanout() -> MessageFanout:
    if _fanout is None:
        raise HTTPException(status_code=503, detail="Generation backend not running.")
    return _fanout


def get_history() -> ChatHistory:
    if _history is None:
        raise HTTPException(status_code=503, detail="Generation backend not running.")
    return _history


def get_data_dir() -> Path:
    return _data_dir


def _sample_rate(processor: JobProcessor) -> int:
    config = getattr(processor, "config", None)
    return getattr(config, "sampling_rate", SAMPLE_RATE)


def init_backend(processor: JobProcessor, data_dir: str | Path) -> GenerationBackend:
    """Start a backend and message fan-out around *processor*."""
    global _processor, _backend, _fanout, _history, _data_dir

    shutdown_backend()

    _processor = processor
    _data_dir = Path(data_dir)
    _backend = GenerationBackend(processor).run()
    _history = ChatHistory(_data_dir)
    _fanout = MessageFanout(_backend, _data_dir, _sample_rate(processor), _history).start()
    logger.info("Storing generated audio and chat history under %s", _data_dir)
    return _backend


def shutdown_backend() -> None:
    global _backend, _fanout, _history

    _history = None
    if _fanout is not None:
        _fanout.stop()
        _fanout = None
    if _backend is not None:
        _backend.shutdown()
        _backend = None


def init_app(
    model_dir: str | Path,
    device: str = "auto",
    data_dir: str | Path = "musegen-data",
    use_split_decoder: bool = False,
) -> None:
    """Load the models and start the backend.

    Called by the CLI or manually before serving.
    """
    from musegen_core.device import get_providers
    from musegen_core.pipeline import load_music_gen

    processor = load_music_gen(
        model_dir,
        providers=get_providers(device),
        use_split_decoder=use_split_decoder,
    )
    init_backend(processor, data_dir)


from musegen_serve.routes import audios, health, ws_generate  # noqa: E402

app.include_router(health.router)
app.include_router(audios.router)
app.include_router(ws_generate.router)
