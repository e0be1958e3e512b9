"""Named-tensor inference sessions.

The decoding engine only ever talks to a :class:`NeuralSession`: a
stateless ``run(named_inputs) -> named_outputs`` call. :class:`OnnxSession`
is the production implementation backed by ``onnxruntime``; tests plug in
plain Python fakes.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol, runtime_checkable

import numpy as np

from musegen_core.device import CPU_PROVIDER

logger = logging.getLogger(__name__)


class SessionError(RuntimeError):
    """A session invocation failed; carries the runtime's message verbatim."""


@runtime_checkable
class NeuralSession(Protocol):
    """Runs one computational graph against named input tensors."""

    def run(self, inputs: Mapping[str, np.ndarray]) -> dict[str, np.ndarray]:
        ...


class OnnxSession:
    """:class:`NeuralSession` backed by an ``onnxruntime.InferenceSession``.

    Read-only after construction; safe to share between jobs as long as
    only one job runs against it at a time.
    """

    def __init__(
        self,
        path: str | Path,
        providers: list[str] | None = None,
        intra_op_num_threads: int = 0,
    ) -> None:
        import onnxruntime as ort

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"ONNX model not found: {path}")

        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = (
            ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        )
        if intra_op_num_threads > 0:
            sess_options.intra_op_num_threads = intra_op_num_threads

        logger.info("Loading %s...", path.name)
        self.path = path
        self._session = ort.InferenceSession(
            str(path),
            sess_options=sess_options,
            providers=providers or [CPU_PROVIDER],
        )
        self.input_names = [i.name for i in self._session.get_inputs()]
        self.output_names = [o.name for o in self._session.get_outputs()]
        self._input_types = {i.name: i.type for i in self._session.get_inputs()}

    def run(self, inputs: Mapping[str, np.ndarray]) -> dict[str, np.ndarray]:
        try:
            outputs = self._session.run(None, dict(inputs))
        except Exception as e:
            raise SessionError(str(e)) from e
        return dict(zip(self.output_names, outputs))

    def float_type(self, input_name: str) -> type[np.floating]:
        """Return the numpy float type the graph expects for *input_name*."""
        if self._input_types.get(input_name) == "tensor(float16)":
            return np.float16
        return np.float32

    def __repr__(self) -> str:
        return f"OnnxSession({self.path.name!r})"
