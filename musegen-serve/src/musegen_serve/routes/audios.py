"""GET /audios/{name} endpoint."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from musegen_serve.fanout import AUDIO_SUBDIR

router = APIRouter()


@router.get("/audios/{name}")
async def get_audio(name: str) -> FileResponse:
    from musegen_serve.app import get_data_dir

    audio_dir = (get_data_dir() / AUDIO_SUBDIR).resolve()
    path = (audio_dir / name).resolve()
    if path.parent != audio_dir or path.suffix != ".wav":
        raise HTTPException(status_code=404, detail=f"Audio '{name}' not found.")
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"Audio '{name}' not found.")
    return FileResponse(path, media_type="audio/wav")
