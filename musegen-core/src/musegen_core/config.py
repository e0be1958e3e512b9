"""Model configuration parsed from a MusicGen ``config.json``."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from musegen_core.constants import (
    DEFAULT_TOP_K,
    FRAMES_PER_SECOND,
    GUIDANCE_SCALE,
    N_CODEBOOKS,
    SAMPLE_RATE,
)


@dataclass(frozen=True)
class MusicGenConfig:
    """Decoder-facing settings, supplied once at construction.

    Only the handful of fields the decoding loop needs are kept; the
    rest of the HuggingFace config is ignored.
    """

    num_attention_heads: int
    num_hidden_layers: int
    pad_token_id: int
    d_kv: int
    top_k: int = DEFAULT_TOP_K
    num_codebooks: int = N_CODEBOOKS
    sampling_rate: int = SAMPLE_RATE
    guidance_scale: float = GUIDANCE_SCALE
    frames_per_second: int = FRAMES_PER_SECOND

    def __post_init__(self) -> None:
        if self.num_codebooks < 1:
            raise ValueError(f"num_codebooks must be >= 1, got {self.num_codebooks}")
        if self.top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {self.top_k}")

    def max_len_for(self, secs: int) -> int:
        """Number of decode steps needed for *secs* seconds of audio."""
        return secs * self.frames_per_second

    @classmethod
    def from_dict(cls, data: dict[str, Any], **overrides: Any) -> MusicGenConfig:
        decoder = _section(data, "decoder")
        text_encoder = _section(data, "text_encoder")
        audio_encoder = data.get("audio_encoder") or {}

        values: dict[str, Any] = {
            "num_attention_heads": int(_require(decoder, "decoder", "num_attention_heads")),
            "num_hidden_layers": int(_require(decoder, "decoder", "num_hidden_layers")),
            "pad_token_id": int(_require(decoder, "decoder", "pad_token_id")),
            "d_kv": int(_require(text_encoder, "text_encoder", "d_kv")),
            "top_k": int(decoder.get("top_k") or DEFAULT_TOP_K),
            "num_codebooks": int(decoder.get("num_codebooks", N_CODEBOOKS)),
            "sampling_rate": int(audio_encoder.get("sampling_rate", SAMPLE_RATE)),
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_json(cls, path: str | Path, **overrides: Any) -> MusicGenConfig:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Model config not found: {path}")
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data, **overrides)


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name)
    if not isinstance(section, dict):
        raise ValueError(f"Invalid model config: missing '{name}' section")
    return section


def _require(section: dict[str, Any], section_name: str, key: str) -> Any:
    if key not in section:
        raise ValueError(f"Invalid model config: missing '{section_name}.{key}'")
    return section[key]
