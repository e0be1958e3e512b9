"""Prompt → audio pipeline: text encoder, token decoder, audio codec."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

import numpy as np

from musegen_core.audio_codec import AudioEncodec
from musegen_core.config import MusicGenConfig
from musegen_core.decoder import (
    CodebookFrame,
    GenerationAborted,
    MergedDecoder,
    MusicGenDecoder,
    SplitDecoder,
)
from musegen_core.device import CPU_PROVIDER, device_name
from musegen_core.session import OnnxSession
from musegen_core.text_encoder import TextEncoder, load_tokenizer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], bool]


class JobProcessor(Protocol):
    """Anything that can turn a prompt into audio samples.

    ``on_progress`` receives the decoded fraction and returns ``True``
    when the job should stop.
    """

    name: str
    device: str

    def process(
        self,
        prompt: str,
        secs: int,
        on_progress: ProgressCallback,
        cancel: threading.Event | None = None,
    ) -> np.ndarray:
        ...


class MusicGenJobProcessor:
    """Production :class:`JobProcessor` running the three MusicGen graphs."""

    def __init__(
        self,
        text_encoder: TextEncoder,
        decoder: MusicGenDecoder,
        audio_encodec: AudioEncodec,
        name: str = "MusicGen",
        device: str = "Cpu",
    ) -> None:
        self.text_encoder = text_encoder
        self.decoder = decoder
        self.audio_encodec = audio_encodec
        self.name = name
        self.device = device

    @property
    def config(self) -> MusicGenConfig:
        return self.decoder.config

    def process(
        self,
        prompt: str,
        secs: int,
        on_progress: ProgressCallback,
        cancel: threading.Event | None = None,
    ) -> np.ndarray:
        max_len = self.config.max_len_for(secs)
        t0 = time.perf_counter()

        last_hidden_state, attention_mask = self.text_encoder.encode(prompt)

        frames: list[CodebookFrame] = []
        with self.decoder.generate_tokens(
            last_hidden_state, attention_mask, max_len, cancel=cancel,
        ) as stream:
            for frame in stream:
                frames.append(frame)
                if on_progress(len(frames) / max_len):
                    raise GenerationAborted()

        samples = self.audio_encodec.encode(frames)
        logger.info(
            "Generated %.1fs of audio (%d frames) in %.1fs",
            len(samples) / self.config.sampling_rate,
            len(frames),
            time.perf_counter() - t0,
        )
        return samples


def load_music_gen(
    model_dir: str | Path,
    providers: list[str] | None = None,
    use_split_decoder: bool = False,
    name: str | None = None,
) -> MusicGenJobProcessor:
    """Build a :class:`MusicGenJobProcessor` from a local model directory.

    Expected files: ``config.json``, ``tokenizer.json``,
    ``text_encoder.onnx``, ``encodec_decode.onnx`` and either
    ``decoder_model_merged.onnx`` or, with *use_split_decoder*,
    ``decoder_model.onnx`` + ``decoder_with_past_model.onnx``.
    """
    model_dir = Path(model_dir)
    if not model_dir.is_dir():
        raise FileNotFoundError(f"Model directory not found: {model_dir}")
    providers = providers or [CPU_PROVIDER]

    config = MusicGenConfig.from_json(model_dir / "config.json")
    tokenizer = load_tokenizer(model_dir / "tokenizer.json")
    text_encoder = TextEncoder(
        tokenizer, OnnxSession(model_dir / "text_encoder.onnx", providers),
    )

    decoder: MusicGenDecoder
    if use_split_decoder:
        first = OnnxSession(model_dir / "decoder_model.onnx", providers)
        with_past = OnnxSession(model_dir / "decoder_with_past_model.onnx", providers)
        decoder = SplitDecoder(
            first, with_past, config, dtype=first.float_type("encoder_hidden_states"),
        )
    else:
        merged = OnnxSession(model_dir / "decoder_model_merged.onnx", providers)
        decoder = MergedDecoder(
            merged, config, dtype=merged.float_type("encoder_hidden_states"),
        )

    audio_encodec = AudioEncodec(OnnxSession(model_dir / "encodec_decode.onnx", providers))

    logger.info("Loaded %s (%d decoder layers)", model_dir.name, config.num_hidden_layers)
    return MusicGenJobProcessor(
        text_encoder,
        decoder,
        audio_encodec,
        name=name or f"MusicGen {model_dir.name}",
        device=device_name(providers),
    )
