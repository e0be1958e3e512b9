"""Delay-pattern token history for multi-codebook decoding.

Each codebook ``i`` is offset by ``i`` steps so a causal model can predict
all codebooks at once. Fed back into the model, the most recent ids look
like a staircase of pads that drains after ``N`` steps::

      0 1 2 3 4 5 6
    0 x x x x x x x
    1 P x x x x x x
    2 P P x x x x x
    3 P P P x x x x

Reading the diagonal ``(0, t), (1, t+1), ..., (N-1, t+N-1)`` undoes the
offset and yields one fully resolved frame.
"""

from __future__ import annotations

from collections.abc import Iterable


class DelayedPatternIds:
    """N equally long, growing sequences of token ids."""

    def __init__(self, n_codebooks: int) -> None:
        if n_codebooks <= 0:
            raise ValueError(f"n_codebooks must be > 0, got {n_codebooks}")
        self.n_codebooks = n_codebooks
        self._codebooks: list[list[int]] = [[] for _ in range(n_codebooks)]

    def __len__(self) -> int:
        return len(self._codebooks[0])

    def push(self, token_ids: Iterable[int]) -> None:
        """Append one id to every codebook."""
        ids = [int(t) for t in token_ids]
        if len(ids) != self.n_codebooks:
            raise ValueError(
                f"Expected exactly {self.n_codebooks} token ids, got {len(ids)}"
            )
        for codebook, token_id in zip(self._codebooks, ids):
            codebook.append(token_id)

    def last_delayed_masked(self, pad_token_id: int) -> list[int]:
        """Staggered input view for the next decode step."""
        seq_len = len(self)
        return [
            codebook[-1] if seq_len - i > 0 else pad_token_id
            for i, codebook in enumerate(self._codebooks)
        ]

    def last_de_delayed(self) -> tuple[int, ...] | None:
        """Most recent fully resolved frame, or ``None`` before ``N`` pushes."""
        seq_len = len(self)
        n = self.n_codebooks
        if seq_len < n:
            return None
        return tuple(
            codebook[seq_len - n + i] for i, codebook in enumerate(self._codebooks)
        )
