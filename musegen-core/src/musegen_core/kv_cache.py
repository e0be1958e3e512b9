"""Past key/value store carried between decoder steps."""

from __future__ import annotations

from collections.abc import Mapping

import numpy as np

from musegen_core.tensor_ops import zeros_tensor

_ENTRIES = (
    ("decoder", "key"),
    ("decoder", "value"),
    ("encoder", "key"),
    ("encoder", "value"),
)


def past_name(layer: int, context: str, kind: str) -> str:
    return f"past_key_values.{layer}.{context}.{kind}"


def present_name(layer: int, context: str, kind: str) -> str:
    return f"present.{layer}.{context}.{kind}"


class PastKeyValues:
    """Per-layer self-attention (decoder) and cross-attention (encoder) K/V.

    Decoder entries are replaced after every step. Encoder entries are only
    taken from the very first step: afterwards the exported graph hands back
    placeholder tensors for them, and feeding those in again corrupts
    generation.
    """

    def __init__(self, values: list[dict[tuple[str, str], np.ndarray]]) -> None:
        self._values = values
        self.is_empty = True

    @classmethod
    def empty(
        cls,
        num_layers: int,
        num_heads: int,
        d_kv: int,
        dtype: type = np.float32,
    ) -> PastKeyValues:
        shape = (1, num_heads, 0, d_kv)
        values = [
            {entry: zeros_tensor(shape, dtype) for entry in _ENTRIES}
            for _ in range(num_layers)
        ]
        return cls(values)

    @property
    def num_layers(self) -> int:
        return len(self._values)

    def get(self, layer: int, context: str, kind: str) -> np.ndarray:
        return self._values[layer][(context, kind)]

    def set(self, layer: int, context: str, kind: str, tensor: np.ndarray) -> None:
        self._values[layer][(context, kind)] = tensor
        self.is_empty = False

    def feeds(self) -> dict[str, np.ndarray]:
        """Session inputs named ``past_key_values.{i}.{context}.{kind}``."""
        return {
            past_name(layer, context, kind): tensor
            for layer, entries in enumerate(self._values)
            for (context, kind), tensor in entries.items()
        }

    def update_from(
        self,
        outputs: Mapping[str, np.ndarray],
        include_encoder: bool,
    ) -> None:
        """Take ``present.*`` tensors from a session's outputs."""
        contexts = ("decoder", "encoder") if include_encoder else ("decoder",)
        for layer in range(self.num_layers):
            for context in contexts:
                for kind in ("key", "value"):
                    name = present_name(layer, context, kind)
                    if name not in outputs:
                        raise KeyError(f"{name} not found in session outputs")
                    self.set(layer, context, kind, outputs[name])
