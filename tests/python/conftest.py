"""Shared test fixtures: fake sessions, fake tokenizer, dummy job processors."""

from __future__ import annotations

import threading
import time
from types import SimpleNamespace

import numpy as np
import pytest

from musegen_core.config import MusicGenConfig
from musegen_core.decoder import GenerationAborted
from musegen_core.kv_cache import present_name

VOCAB_SIZE = 64
PAD_TOKEN_ID = 2048
D_MODEL = 8
SAMPLES_PER_FRAME = 640


def expected_token(step: int, codebook: int) -> int:
    """Token the fake decoder makes deterministic at (*step*, *codebook*)."""
    return (step * 7 + codebook * 3 + 1) % VOCAB_SIZE


# ---------------------------------------------------------------------------
# Fake tokenizer / sessions
# ---------------------------------------------------------------------------


class FakeTokenizer:
    """One id per whitespace-separated word, plus an end-of-sequence id."""

    eos_id = 1

    def encode(self, prompt: str) -> SimpleNamespace:
        ids = [2 + sum(ord(c) for c in word) % 100 for word in prompt.split()]
        return SimpleNamespace(ids=ids + [self.eos_id])


class FakeTextSession:
    def __init__(self) -> None:
        self.calls: list[dict[str, np.ndarray]] = []

    def run(self, inputs):
        self.calls.append(dict(inputs))
        n_tokens = inputs["input_ids"].shape[1]
        return {"last_hidden_state": np.full((1, n_tokens, D_MODEL), 0.5, dtype=np.float32)}


class FakeDecoderSession:
    """Decoder graph stand-in.

    The conditional half of the batch puts a large logit on
    :func:`expected_token`, so ``top_k=1`` sampling is deterministic.
    ``present.*`` tensors are filled with the index of the call that
    produced them, which makes cache hand-over observable.

    Args:
        config: Model shape to mimic.
        fail_at: Raise a ``SessionError`` on this call index.
        on_call: Hook invoked with the call index before producing outputs.
        step_offset: Added to the call index when choosing tokens (for the
            with-past half of a split decoder).
    """

    def __init__(
        self,
        config: MusicGenConfig,
        fail_at: int | None = None,
        on_call=None,
        step_offset: int = 0,
    ) -> None:
        self.config = config
        self.fail_at = fail_at
        self.on_call = on_call
        self.step_offset = step_offset
        self.calls: list[dict[str, np.ndarray]] = []

    def run(self, inputs):
        from musegen_core.session import SessionError

        index = len(self.calls)
        self.calls.append(dict(inputs))
        if self.on_call is not None:
            self.on_call(index)
        if self.fail_at is not None and index == self.fail_at:
            raise SessionError(f"decoder exploded at call {index}")

        step = index + self.step_offset
        n = self.config.num_codebooks
        logits = np.zeros((2 * n, 1, VOCAB_SIZE), dtype=np.float32)
        for cb in range(n):
            logits[cb, 0, expected_token(step, cb)] = 50.0

        outputs = {"logits": logits}
        shape = (1, self.config.num_attention_heads, step + 1, self.config.d_kv)
        for layer in range(self.config.num_hidden_layers):
            for context in ("decoder", "encoder"):
                for kind in ("key", "value"):
                    outputs[present_name(layer, context, kind)] = np.full(
                        shape, float(step), dtype=np.float32,
                    )
        return outputs


class FakeEncodecSession:
    def __init__(self, dtype=np.float32) -> None:
        self.dtype = dtype
        self.calls: list[dict[str, np.ndarray]] = []

    def run(self, inputs):
        self.calls.append(dict(inputs))
        n_frames = inputs["audio_codes"].shape[-1]
        values = np.linspace(-0.5, 0.5, n_frames * SAMPLES_PER_FRAME).astype(self.dtype)
        return {"audio_values": values.reshape(1, 1, -1)}


# ---------------------------------------------------------------------------
# Job processors for backend / server tests
# ---------------------------------------------------------------------------


class DummyJobProcessor:
    """Treats ``secs`` as a step count and reports ``(i + 1) / secs``.

    A prompt of ``"fail at {i}"`` raises on step ``i``. Samples are the
    step indices.
    """

    name = "Dummy"
    device = "Cpu"

    def __init__(self, step_delay: float = 0.0) -> None:
        self.step_delay = step_delay
        self.started = threading.Event()

    def process(self, prompt, secs, on_progress, cancel=None):
        self.started.set()
        samples = []
        for i in range(secs):
            if cancel is not None and cancel.is_set():
                raise GenerationAborted()
            if self.step_delay:
                time.sleep(self.step_delay)
            if prompt == f"fail at {i}":
                raise RuntimeError(f"Failed at {i}")
            samples.append(float(i))
            if on_progress((i + 1) / secs):
                raise GenerationAborted()
        return np.asarray(samples, dtype=np.float32)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def model_config() -> MusicGenConfig:
    """Tiny deterministic model: 4 codebooks, 2 layers, top_k=1, 5 frames/s."""
    return MusicGenConfig(
        num_attention_heads=2,
        num_hidden_layers=2,
        pad_token_id=PAD_TOKEN_ID,
        d_kv=4,
        top_k=1,
        num_codebooks=4,
        frames_per_second=5,
    )


@pytest.fixture
def fake_tokenizer() -> FakeTokenizer:
    return FakeTokenizer()


@pytest.fixture
def encoder_outputs() -> tuple[np.ndarray, np.ndarray]:
    """``(last_hidden_state [1, 3, D], attention_mask [1, 3])``."""
    return (
        np.full((1, 3, D_MODEL), 0.5, dtype=np.float32),
        np.ones((1, 3), dtype=np.int64),
    )


@pytest.fixture
def fake_processor(model_config, fake_tokenizer):
    from musegen_core.audio_codec import AudioEncodec
    from musegen_core.decoder import MergedDecoder
    from musegen_core.pipeline import MusicGenJobProcessor
    from musegen_core.text_encoder import TextEncoder

    return MusicGenJobProcessor(
        TextEncoder(fake_tokenizer, FakeTextSession()),
        MergedDecoder(FakeDecoderSession(model_config), model_config),
        AudioEncodec(FakeEncodecSession()),
        name="Fake",
    )


@pytest.fixture
def dummy_processor() -> DummyJobProcessor:
    return DummyJobProcessor()
