"""GET /health and GET /info endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from musegen_core.constants import MAX_DURATION_SECS
from musegen_serve.schemas import HealthResponse, InfoResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    from musegen_serve.app import _backend, _processor

    return HealthResponse(
        status="ok",
        models_loaded=_processor is not None,
        queue_running=_backend.running if _backend else False,
    )


@router.get("/info", response_model=InfoResponse)
async def info() -> InfoResponse:
    from musegen_serve.app import _sample_rate, get_processor

    processor = get_processor()
    return InfoResponse(
        model=processor.name,
        device=processor.device,
        max_secs=MAX_DURATION_SECS,
        sample_rate=_sample_rate(processor),
    )
