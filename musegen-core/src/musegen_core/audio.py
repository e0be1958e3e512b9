"""WAV storage for generated audio (float32 PCM via ``soundfile``)."""

from __future__ import annotations

import io
from pathlib import Path

import numpy as np
import soundfile as sf

from musegen_core.constants import SAMPLE_RATE


def write_wav(
    path: str | Path,
    samples: np.ndarray,
    sample_rate: int = SAMPLE_RATE,
) -> Path:
    """Write mono float32 samples to *path*, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(str(path), np.asarray(samples, dtype=np.float32), sample_rate, subtype="FLOAT")
    return path


def read_wav(path: str | Path) -> tuple[np.ndarray, int]:
    """Read a WAV file as float32; returns ``(samples, sample_rate)``."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Audio file not found: {path}")
    samples, sr = sf.read(str(path), dtype="float32")
    return samples, sr


def wav_bytes(samples: np.ndarray, sample_rate: int = SAMPLE_RATE) -> bytes:
    """Encode samples as an in-memory float32 WAV."""
    buf = io.BytesIO()
    sf.write(buf, np.asarray(samples, dtype=np.float32), sample_rate, format="WAV", subtype="FLOAT")
    return buf.getvalue()
