"""Autoregressive multi-codebook token decoder.

The decoder turns encoder hidden states into a lazy stream of
:data:`CodebookFrame` values. Decoding runs on a dedicated thread and hands
frames to the caller through a bounded :class:`TokenStream`.

Per step:

1. check the cancellation flag (the only check-and-exit point);
2. build session inputs from the staggered token view and the K/V cache;
3. run the decoder graph once;
4. fold the conditional/unconditional logits with free guidance;
5. top-k sample one id per codebook and push them;
6. emit the de-staggered frame once the delay has elapsed;
7. take the new K/V cache (cross-attention only on step 0).
"""

from __future__ import annotations

import abc
import enum
import logging
import queue
import threading
from collections.abc import Iterator

import numpy as np
import torch

from musegen_core.config import MusicGenConfig
from musegen_core.constants import TOKEN_QUEUE_SIZE
from musegen_core.kv_cache import PastKeyValues
from musegen_core.sampler import Logits
from musegen_core.sequence_state import DelayedPatternIds
from musegen_core.session import NeuralSession
from musegen_core.tensor_ops import dupe_zeros_along_first_dim

logger = logging.getLogger(__name__)

CodebookFrame = tuple[int, ...]

_END = object()


class GenerationAborted(RuntimeError):
    """Raised when a job's cancellation flag is observed."""

    def __init__(self, message: str = "Aborted") -> None:
        super().__init__(message)


class DecoderState(str, enum.Enum):
    PRIMING = "priming"
    CACHING = "caching"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"


class TokenStream:
    """Bounded, ordered single-producer/single-consumer frame channel.

    Iterating yields frames in decode order. If the producer fails, the
    error is raised from the iterator and the stream ends. Closing the
    stream (or leaving its ``with`` block) tells the producer nobody is
    reading any more; the producer then stops without error.
    """

    def __init__(self, maxsize: int = TOKEN_QUEUE_SIZE, put_timeout: float = 0.05) -> None:
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self._put_timeout = put_timeout
        self._thread: threading.Thread | None = None
        self.state = DecoderState.PRIMING

    # -- producer side -------------------------------------------------

    def _put(self, item: object) -> bool:
        while not self._closed.is_set():
            try:
                self._queue.put(item, timeout=self._put_timeout)
                return True
            except queue.Full:
                continue
        return False

    def put(self, frame: CodebookFrame) -> bool:
        """Send a frame; ``False`` means the consumer is gone."""
        return self._put(("frame", frame))

    def put_error(self, error: BaseException) -> bool:
        return self._put(("error", error))

    def finish(self) -> None:
        self._put(_END)

    # -- consumer side -------------------------------------------------

    def __iter__(self) -> Iterator[CodebookFrame]:
        while True:
            item = self._queue.get()
            if item is _END:
                return
            kind, payload = item
            if kind == "error":
                self._closed.set()
                raise payload
            yield payload

    def close(self) -> None:
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the producer thread to exit."""
        if self._thread is not None:
            self._thread.join(timeout)

    def __enter__(self) -> TokenStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class MusicGenDecoder(abc.ABC):
    """Common decode loop; subclasses choose graphs and inputs per step."""

    def __init__(
        self,
        config: MusicGenConfig,
        dtype: type = np.float32,
        queue_size: int = TOKEN_QUEUE_SIZE,
        generator: torch.Generator | None = None,
    ) -> None:
        self.config = config
        self.dtype = dtype
        self.queue_size = queue_size
        self.generator = generator

    @abc.abstractmethod
    def _session_for(self, step: int) -> NeuralSession:
        ...

    @abc.abstractmethod
    def _step_inputs(
        self,
        step: int,
        input_ids: np.ndarray,
        cache: PastKeyValues,
        encoder_hidden_states: np.ndarray,
        encoder_attention_mask: np.ndarray,
    ) -> dict[str, np.ndarray]:
        ...

    def generate_tokens(
        self,
        last_hidden_state: np.ndarray,
        attention_mask: np.ndarray,
        max_len: int,
        cancel: threading.Event | None = None,
    ) -> TokenStream:
        """Start decoding *max_len* steps on a worker thread."""
        # guidance_scale > 1 needs an unconditional half of zeros
        encoder_hidden_states = dupe_zeros_along_first_dim(
            np.asarray(last_hidden_state).astype(self.dtype, copy=False),
        )
        encoder_attention_mask = dupe_zeros_along_first_dim(
            np.asarray(attention_mask, dtype=np.int64),
        )

        stream = TokenStream(maxsize=self.queue_size)
        thread = threading.Thread(
            target=self._run,
            args=(
                stream,
                encoder_hidden_states,
                encoder_attention_mask,
                max_len,
                cancel or threading.Event(),
            ),
            name="musegen-decoder",
            daemon=True,
        )
        stream._thread = thread
        thread.start()
        return stream

    def _run(
        self,
        stream: TokenStream,
        encoder_hidden_states: np.ndarray,
        encoder_attention_mask: np.ndarray,
        max_len: int,
        cancel: threading.Event,
    ) -> None:
        try:
            self._decode(
                stream, encoder_hidden_states, encoder_attention_mask, max_len, cancel,
            )
            stream.state = DecoderState.DONE
        except GenerationAborted as e:
            stream.state = DecoderState.ABORTED
            stream.put_error(e)
        except Exception as e:
            logger.debug("Decoding failed: %s", e)
            stream.state = DecoderState.FAILED
            stream.put_error(e)
        finally:
            stream.finish()

    def _input_ids(self, ids: DelayedPatternIds) -> np.ndarray:
        n = self.config.num_codebooks
        masked = ids.last_delayed_masked(self.config.pad_token_id)
        return np.asarray(masked * 2, dtype=np.int64).reshape(2 * n, 1)

    def _decode(
        self,
        stream: TokenStream,
        encoder_hidden_states: np.ndarray,
        encoder_attention_mask: np.ndarray,
        max_len: int,
        cancel: threading.Event,
    ) -> None:
        config = self.config
        ids = DelayedPatternIds(config.num_codebooks)
        cache = PastKeyValues.empty(
            config.num_hidden_layers,
            config.num_attention_heads,
            config.d_kv,
            self.dtype,
        )

        for step in range(max_len):
            if cancel.is_set():
                logger.info("Decoding aborted at step %d/%d", step, max_len)
                raise GenerationAborted()

            session = self._session_for(step)
            inputs = self._step_inputs(
                step,
                self._input_ids(ids),
                cache,
                encoder_hidden_states,
                encoder_attention_mask,
            )
            outputs = session.run(inputs)
            if "logits" not in outputs:
                raise KeyError("logits not found in decoder outputs")

            logits = Logits.from_3d(outputs["logits"]).apply_free_guidance(
                config.guidance_scale,
            )
            ids.push(token_id for token_id, _ in logits.sample(config.top_k, self.generator))

            frame = ids.last_de_delayed()
            if frame is not None and not stream.put(frame):
                logger.debug("Token stream closed by consumer at step %d", step)
                return

            cache.update_from(outputs, include_encoder=step == 0)
            stream.state = DecoderState.CACHING


class MergedDecoder(MusicGenDecoder):
    """Single ``decoder_model_merged`` graph switched by ``use_cache_branch``.

    The merged graph declares ``encoder_hidden_states`` as a required input,
    so it is passed on every step; the graph ignores it on the cache branch.
    """

    def __init__(self, session: NeuralSession, config: MusicGenConfig, **kwargs) -> None:
        super().__init__(config, **kwargs)
        self.session = session

    def _session_for(self, step: int) -> NeuralSession:
        return self.session

    def _step_inputs(
        self,
        step: int,
        input_ids: np.ndarray,
        cache: PastKeyValues,
        encoder_hidden_states: np.ndarray,
        encoder_attention_mask: np.ndarray,
    ) -> dict[str, np.ndarray]:
        inputs = {
            "encoder_attention_mask": encoder_attention_mask,
            "input_ids": input_ids,
            "encoder_hidden_states": encoder_hidden_states,
            "use_cache_branch": np.array([step > 0], dtype=bool),
        }
        inputs.update(cache.feeds())
        return inputs


class SplitDecoder(MusicGenDecoder):
    """``decoder_model`` for the first step, ``decoder_with_past_model`` after.

    Encoder hidden states are only sent on the first step; the with-past
    graph reads cross-attention from the cache instead.
    """

    def __init__(
        self,
        decoder_session: NeuralSession,
        decoder_with_past_session: NeuralSession,
        config: MusicGenConfig,
        **kwargs,
    ) -> None:
        super().__init__(config, **kwargs)
        self.decoder_session = decoder_session
        self.decoder_with_past_session = decoder_with_past_session

    def _session_for(self, step: int) -> NeuralSession:
        return self.decoder_session if step == 0 else self.decoder_with_past_session

    def _step_inputs(
        self,
        step: int,
        input_ids: np.ndarray,
        cache: PastKeyValues,
        encoder_hidden_states: np.ndarray,
        encoder_attention_mask: np.ndarray,
    ) -> dict[str, np.ndarray]:
        inputs = {
            "encoder_attention_mask": encoder_attention_mask,
            "input_ids": input_ids,
        }
        if step == 0:
            inputs["encoder_hidden_states"] = encoder_hidden_states
        else:
            inputs.update(cache.feeds())
        return inputs
