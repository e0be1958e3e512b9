"""Tests for constant integrity and internal consistency."""

import yaml

from musegen_core import constants


def test_sample_rate():
    assert constants.SAMPLE_RATE == 32000


def test_frames_per_second():
    # 32 kHz / 640-sample hop
    assert constants.FRAMES_PER_SECOND == 50
    assert constants.SAMPLE_RATE % constants.FRAMES_PER_SECOND == 0


def test_n_codebooks():
    assert constants.N_CODEBOOKS == 4


def test_guidance_scale_is_float():
    assert isinstance(constants.GUIDANCE_SCALE, float)
    assert constants.GUIDANCE_SCALE == 3.0


def test_duration_limits_are_ordered():
    assert 0 < constants.MIN_DURATION_SECS <= constants.DEFAULT_DURATION_SECS
    assert constants.DEFAULT_DURATION_SECS <= constants.MAX_DURATION_SECS


def test_runtime_limits_positive():
    assert constants.TOKEN_QUEUE_SIZE > 0
    assert constants.POLL_INTERVAL_MS > 0
    assert constants.DEFAULT_TOP_K > 0


def test_yaml_keys_match_module():
    with open(constants._YAML_PATH, encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    for key, value in cfg.items():
        assert getattr(constants, key.upper()) == value
