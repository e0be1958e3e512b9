"""Prompt → encoder hidden states."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from musegen_core.session import NeuralSession
from musegen_core.tensor_ops import ones_tensor

if TYPE_CHECKING:
    from tokenizers import Tokenizer

logger = logging.getLogger(__name__)


def load_tokenizer(path: str | Path) -> Tokenizer:
    """Load a ``tokenizer.json`` with padding and truncation disabled."""
    from tokenizers import Tokenizer

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Tokenizer not found: {path}")
    tokenizer = Tokenizer.from_file(str(path))
    tokenizer.no_padding()
    tokenizer.no_truncation()
    return tokenizer


class TextEncoder:
    """Tokenizes a prompt and runs the text encoder graph once.

    Stateless between calls; tokenizer or session errors propagate.
    """

    def __init__(self, tokenizer: Tokenizer, session: NeuralSession) -> None:
        self.tokenizer = tokenizer
        self.session = session

    def encode(self, prompt: str) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(last_hidden_state [1, L, D], attention_mask int64[1, L])``."""
        token_ids = self.tokenizer.encode(prompt).ids
        n_tokens = len(token_ids)
        input_ids = np.asarray(token_ids, dtype=np.int64).reshape(1, n_tokens)
        attention_mask = ones_tensor((1, n_tokens))

        outputs = self.session.run({
            "input_ids": input_ids,
            "attention_mask": attention_mask,
        })
        if "last_hidden_state" not in outputs:
            raise KeyError("last_hidden_state not found in text encoder outputs")

        logger.debug("Encoded prompt into %d tokens", n_tokens)
        return outputs["last_hidden_state"], ones_tensor((1, n_tokens))
