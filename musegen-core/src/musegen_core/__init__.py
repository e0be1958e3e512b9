"""musegen-core: text-to-music decoding engine and shared constants."""

from musegen_core.constants import (
    FRAMES_PER_SECOND,
    GUIDANCE_SCALE,
    MAX_DURATION_SECS,
    MIN_DURATION_SECS,
    N_CODEBOOKS,
    SAMPLE_RATE,
)
from musegen_core.decoder import GenerationAborted
from musegen_core.device import get_providers
from musegen_core.pipeline import JobProcessor, MusicGenJobProcessor, load_music_gen
from musegen_core.session import SessionError

__all__ = [
    "FRAMES_PER_SECOND",
    "GUIDANCE_SCALE",
    "MAX_DURATION_SECS",
    "MIN_DURATION_SECS",
    "N_CODEBOOKS",
    "SAMPLE_RATE",
    "GenerationAborted",
    "JobProcessor",
    "MusicGenJobProcessor",
    "SessionError",
    "get_providers",
    "load_music_gen",
]
