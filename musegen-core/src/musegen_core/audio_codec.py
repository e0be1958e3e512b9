"""Codebook frames → PCM samples."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

import numpy as np

from musegen_core.session import NeuralSession

logger = logging.getLogger(__name__)


class EncodingError(ValueError):
    """The audio codec produced something that is not float PCM."""


class AudioEncodec:
    """Runs the audio codec decode graph over a complete frame sequence.

    The codec has recurrent, non-causal state, so feeding it chunks
    produces audible artefacts at chunk boundaries. All frames are
    gathered first and decoded in one call.
    """

    def __init__(self, session: NeuralSession) -> None:
        self.session = session

    def encode(self, frames: Iterable[Sequence[int]]) -> np.ndarray:
        """Return mono float32 samples for *frames* (``T`` frames of ``N`` ids)."""
        data = [list(frame) for frame in frames]
        if not data:
            raise EncodingError("Cannot decode audio from an empty frame sequence")

        n_codebooks = len(data[0])
        if any(len(frame) != n_codebooks for frame in data):
            raise EncodingError("All frames must carry the same number of codebooks")

        # [T, N] -> [1, 1, N, T]
        codes = np.asarray(data, dtype=np.int64).T[np.newaxis, np.newaxis, :, :]
        outputs = self.session.run({"audio_codes": np.ascontiguousarray(codes)})
        if "audio_values" not in outputs:
            raise KeyError("audio_values not found in audio codec outputs")

        audio_values = np.asarray(outputs["audio_values"])
        if audio_values.dtype not in (np.float16, np.float32):
            raise EncodingError(
                f"Unsupported audio codec output type: {audio_values.dtype}"
            )

        samples = audio_values.astype(np.float32).reshape(-1)
        logger.debug("Decoded %d frames into %d samples", len(data), len(samples))
        return samples
