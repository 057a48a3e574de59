"""
Unit tests for RingSampleBuffer.
Run with:  pytest tests/test_ring_buffer.py
"""

from __future__ import annotations

import numpy as np
import pytest

from vitals_monitor.models import Sample
from vitals_monitor.ring_buffer import RingSampleBuffer


class TestRingSampleBuffer:

    @pytest.mark.parametrize("capacity", [0, 3, 100, -4])
    def test_rejects_non_power_of_two(self, capacity):
        with pytest.raises(ValueError):
            RingSampleBuffer(capacity)

    def test_starts_empty(self):
        buf = RingSampleBuffer(8)
        assert len(buf) == 0
        assert buf.fill_ratio == 0.0
        assert buf.last() is None
        assert buf.values().size == 0

    def test_overwrites_oldest_when_full(self):
        buf = RingSampleBuffer(4)
        for v in range(1, 7):
            buf.append(float(v), timestamp=v * 10.0)
        assert buf.is_full
        assert len(buf) == 4
        np.testing.assert_array_equal(buf.values(), [3.0, 4.0, 5.0, 6.0])
        np.testing.assert_array_equal(buf.timestamps(), [30.0, 40.0, 50.0, 60.0])
        assert buf.last() == 6.0

    def test_latest(self):
        buf = RingSampleBuffer(4)
        buf.extend([1, 2, 3])
        np.testing.assert_array_equal(buf.latest(2), [2.0, 3.0])
        np.testing.assert_array_equal(buf.latest(10), [1.0, 2.0, 3.0])
        assert buf.latest(0).size == 0

    def test_values_is_a_copy(self):
        buf = RingSampleBuffer(4)
        buf.extend([1, 2])
        out = buf.values()
        out[0] = 99.0
        assert buf.values()[0] == 1.0

    def test_push_sample(self):
        buf = RingSampleBuffer(2)
        buf.push(Sample(value=120.5, timestamp=1000.0))
        assert buf.last() == 120.5
        assert buf.timestamps()[-1] == 1000.0

    def test_fill_ratio_grows(self):
        buf = RingSampleBuffer(8)
        buf.extend([0.0] * 4)
        assert buf.fill_ratio == pytest.approx(0.5)

    def test_clear(self):
        buf = RingSampleBuffer(4)
        buf.extend([1, 2, 3, 4, 5])
        buf.clear()
        assert len(buf) == 0
        buf.append(7.0)
        np.testing.assert_array_equal(buf.values(), [7.0])
