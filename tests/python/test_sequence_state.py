"""Tests for the delay-pattern token history."""

from __future__ import annotations

import pytest

from musegen_core.sequence_state import DelayedPatternIds

PAD = 2048


class TestDelayedPatternIds:
    def test_rejects_zero_codebooks(self):
        with pytest.raises(ValueError):
            DelayedPatternIds(0)

    def test_empty_is_all_pad(self):
        ids = DelayedPatternIds(4)
        assert len(ids) == 0
        assert ids.last_delayed_masked(PAD) == [PAD, PAD, PAD, PAD]
        assert ids.last_de_delayed() is None

    def test_push_wrong_count(self):
        ids = DelayedPatternIds(4)
        with pytest.raises(ValueError, match="exactly 4"):
            ids.push([1, 2, 3])
        assert len(ids) == 0

    def test_staircase_drains_after_n_pushes(self):
        ids = DelayedPatternIds(4)
        ids.push([10, 11, 12, 13])
        assert ids.last_delayed_masked(PAD) == [10, PAD, PAD, PAD]
        ids.push([20, 21, 22, 23])
        assert ids.last_delayed_masked(PAD) == [20, 21, PAD, PAD]
        ids.push([30, 31, 32, 33])
        assert ids.last_delayed_masked(PAD) == [30, 31, 32, PAD]
        ids.push([40, 41, 42, 43])
        assert ids.last_delayed_masked(PAD) == [40, 41, 42, 43]

    def test_de_delayed_reads_diagonal(self):
        ids = DelayedPatternIds(4)
        for step in range(3):
            ids.push([step * 10 + cb for cb in range(4)])
            assert ids.last_de_delayed() is None
        ids.push([30, 31, 32, 33])
        assert ids.last_de_delayed() == (0, 11, 22, 33)
        ids.push([40, 41, 42, 43])
        assert ids.last_de_delayed() == (10, 21, 32, 43)

    def test_single_codebook_has_no_delay(self):
        ids = DelayedPatternIds(1)
        ids.push([7])
        assert ids.last_delayed_masked(PAD) == [7]
        assert ids.last_de_delayed() == (7,)

    def test_accepts_generator(self):
        ids = DelayedPatternIds(2)
        ids.push(x for x in (1, 2))
        assert len(ids) == 1
