"""musegen shared constants loaded from configs/constants.yaml."""

from pathlib import Path

import yaml

_YAML_PATH = Path(__file__).resolve().parents[3] / "configs" / "constants.yaml"

with open(_YAML_PATH, encoding="utf-8") as f:
    _cfg = yaml.safe_load(f)

# --- Audio Codec ---
SAMPLE_RATE: int = _cfg["sample_rate"]
FRAMES_PER_SECOND: int = _cfg["frames_per_second"]
N_CODEBOOKS: int = _cfg["n_codebooks"]

# --- Sampling ---
GUIDANCE_SCALE: float = float(_cfg["guidance_scale"])
DEFAULT_TOP_K: int = _cfg["default_top_k"]

# --- Request Limits ---
MIN_DURATION_SECS: int = _cfg["min_duration_secs"]
MAX_DURATION_SECS: int = _cfg["max_duration_secs"]
DEFAULT_DURATION_SECS: int = _cfg["default_duration_secs"]

# --- Runtime ---
TOKEN_QUEUE_SIZE: int = _cfg["token_queue_size"]
POLL_INTERVAL_MS: int = _cfg["poll_interval_ms"]

# --- Server ---
DEFAULT_PORT: int = _cfg["default_port"]
