"""Small numpy helpers for building session inputs."""

from __future__ import annotations

import numpy as np


def zeros_tensor(shape: tuple[int, ...], dtype: type = np.float32) -> np.ndarray:
    return np.zeros(shape, dtype=dtype)


def ones_tensor(shape: tuple[int, ...], dtype: type = np.int64) -> np.ndarray:
    return np.ones(shape, dtype=dtype)


def dupe_zeros_along_first_dim(tensor: np.ndarray) -> np.ndarray:
    """Double the batch axis, appending zeros.

    ``[B, ...] -> [2B, ...]`` where rows ``B..2B`` are all zero. This is
    the conditional + unconditional batch classifier-free guidance needs.
    """
    return np.concatenate([tensor, np.zeros_like(tensor)], axis=0)
