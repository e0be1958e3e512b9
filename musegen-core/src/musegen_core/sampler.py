"""Logits post-processing: classifier-free guidance and top-k sampling."""

from __future__ import annotations

import math

import numpy as np
import torch


def apply_guidance(
    cond: torch.Tensor,
    uncond: torch.Tensor,
    scale: float,
) -> torch.Tensor:
    """``uncond + (cond - uncond) * scale``.

    ``scale == 1`` returns *cond*, ``scale == 0`` returns *uncond*.
    """
    return uncond + (cond - uncond) * scale


def sample_top_k(
    row: torch.Tensor,
    k: int,
    generator: torch.Generator | None = None,
) -> tuple[int, float]:
    """Draw one token id from the top-*k* entries of a logits row.

    Args:
        row: 1-D logits over the vocabulary.
        k: Number of most probable entries to keep (clamped to the row length).
        generator: Optional RNG; torch's process-wide RNG when ``None``.

    Returns:
        ``(token_id, log_prob)`` where ``log_prob`` is the natural log of the
        token's softmax probability over the full row.
    """
    if k < 1:
        raise ValueError(f"top_k must be >= 1, got {k}")
    probs = torch.softmax(row.float(), dim=-1)
    k = min(k, probs.shape[-1])
    top_probs, top_ids = torch.topk(probs, k)
    # multinomial accepts unnormalised weights
    idx = torch.multinomial(top_probs, 1, generator=generator).item()
    prob = top_probs[idx].item()
    return int(top_ids[idx].item()), math.log(prob) if prob > 0 else -math.inf


class Logits:
    """2-D logits, ``[batch, vocab]``."""

    def __init__(self, tensor: torch.Tensor) -> None:
        if tensor.dim() != 2:
            raise ValueError(f"Expected 2-D logits, got shape {tuple(tensor.shape)}")
        self.tensor = tensor

    @classmethod
    def from_3d(cls, array: np.ndarray | torch.Tensor) -> Logits:
        """Build from raw ``[batch, seq_len=1, vocab]`` decoder output."""
        tensor = torch.as_tensor(np.asarray(array, dtype=np.float32))
        if tensor.dim() != 3:
            raise ValueError(f"Expected 3-D logits, got shape {tuple(tensor.shape)}")
        return cls(tensor[:, -1, :])

    @property
    def shape(self) -> tuple[int, int]:
        return tuple(self.tensor.shape)

    def apply_free_guidance(self, guidance_scale: float) -> Logits:
        """Fold the conditional/unconditional halves of the batch together."""
        batch = self.tensor.shape[0]
        if batch % 2 != 0:
            raise ValueError(
                "Free guidance needs an even batch size (conditional + "
                f"unconditional halves), got {batch}"
            )
        half = batch // 2
        cond, uncond = self.tensor[:half], self.tensor[half:]
        return Logits(apply_guidance(cond, uncond, guidance_scale))

    def sample(
        self,
        k: int,
        generator: torch.Generator | None = None,
    ) -> list[tuple[int, float]]:
        """One ``(token_id, log_prob)`` per batch row."""
        return [sample_top_k(row, k, generator) for row in self.tensor]
