"""
Unit tests for AdaptiveCalibrator.
Run with:  pytest tests/test_calibrator.py
"""

from __future__ import annotations

import math

import pytest

from vitals_monitor.calibrator import AdaptiveCalibrator
from vitals_monitor.config import CalibrationConfig
from vitals_monitor.models import CalibrationEntry, MeasurementType, SignalConditions

FIXED_NOW = 1_700_000_000_000.0

REFERENCE = SignalConditions(signal_quality=1.0, light_level=0.5, movement=0.0, temperature=20.0)


def _calibrator(**overrides) -> AdaptiveCalibrator:
    return AdaptiveCalibrator(CalibrationConfig(**overrides), clock=lambda: FIXED_NOW)


class TestBaseline:

    def test_reference_conditions_reduce_to_base_factor(self):
        cal = _calibrator()
        assert cal.baseline_factor(REFERENCE) == 1.35

    def test_first_calibration_uses_baseline(self):
        result = _calibrator().calibrate(200, REFERENCE, MeasurementType.BPM)
        assert not result.is_empty
        assert result.factor == 1.35
        assert result.confidence == pytest.approx(0.6)
        pre_clamp = 200 * 1.35 * (1 + 0.1 * math.log10(2.0))
        assert result.value == pytest.approx(180 + (pre_clamp - 180) * 0.5)

    def test_movement_raises_baseline(self):
        cal = _calibrator()
        moving = SignalConditions(signal_quality=1.0, movement=1.0)
        assert cal.baseline_factor(moving) == pytest.approx(1.35 * 1.2)

    def test_low_quality_caps_confidence(self):
        result = _calibrator().calibrate(70, SignalConditions(signal_quality=0.3))
        assert result.confidence == pytest.approx(0.3)


class TestLearning:

    def test_similar_case_adjusts_factor(self):
        cal = _calibrator()
        cal.calibrate(100, REFERENCE)
        second = cal.calibrate(100, REFERENCE)
        # +0.1 × (quality − 0.5) on the stored 1.35
        assert second.factor == pytest.approx(1.40)
        assert second.confidence == pytest.approx(1.0)

    def test_factor_averages_stored_factors(self):
        cal = _calibrator()
        first = cal.calibrate(100, REFERENCE)
        second = cal.calibrate(100, REFERENCE)
        third = cal.calibrate(100, REFERENCE)
        stored = [e.factor for e in cal.history[:2]]
        assert stored == pytest.approx([first.factor, second.factor])
        # equal weights under identical conditions, then +0.05 for quality 1.0
        assert third.factor == pytest.approx(sum(stored) / 2 + 0.05)
        assert third.factor == pytest.approx(1.425)

    def test_dissimilar_conditions_are_ignored(self):
        cal = _calibrator()
        cal.calibrate(100, REFERENCE)
        other = SignalConditions(signal_quality=0.0, light_level=0.5, movement=0.0, temperature=20.0)
        assert cal.find_similar_cases(other) == []
        assert cal.similarity(REFERENCE, REFERENCE) == pytest.approx(1.0)
        assert cal.similarity(REFERENCE, other) == pytest.approx(0.7)

    def test_similar_cases_limited_to_most_recent(self):
        clock = iter(range(100))
        cal = AdaptiveCalibrator(clock=lambda: float(next(clock)))
        for _ in range(15):
            cal.calibrate(80, REFERENCE)
        similar = cal.find_similar_cases(REFERENCE)
        assert len(similar) == 10
        assert [e.timestamp for e in similar] == [float(t) for t in range(14, 4, -1)]

    def test_equal_timestamps_keep_latest_insertions(self):
        cal = _calibrator()
        for raw in range(1, 16):
            cal.calibrate(float(raw), REFERENCE)
        similar = cal.find_similar_cases(REFERENCE)
        assert [e.raw for e in similar] == [float(r) for r in range(15, 5, -1)]

    def test_recent_cases_outweigh_old_ones(self):
        now = 10 * 86_400_000.0
        cal = AdaptiveCalibrator(clock=lambda: now)
        cal._history.append(CalibrationEntry(
            raw=100, calibrated=200, conditions=REFERENCE, factor=2.0, timestamp=0.0,
        ))
        cal._history.append(CalibrationEntry(
            raw=100, calibrated=100, conditions=REFERENCE, factor=1.0, timestamp=now,
        ))
        result = cal.calibrate(100, REFERENCE)
        # ten days old → weight e^-10; average ≈ 1.0, plus the +0.05 quality adjustment
        assert result.factor == pytest.approx(1.05, abs=1e-3)


class TestHistory:

    def test_history_bound_and_order(self):
        cal = _calibrator()
        for raw in range(150):
            cal.calibrate(float(raw + 1), REFERENCE)
        history = cal.history
        assert len(history) == 100
        assert [e.raw for e in history] == [float(r + 1) for r in range(50, 150)]

    def test_reset(self):
        cal = _calibrator()
        cal.calibrate(90, REFERENCE)
        cal.reset()
        assert cal.history == ()

    def test_invalid_conditions_yield_empty_result(self):
        cal = _calibrator()
        result = cal.calibrate(90, SignalConditions(signal_quality=float("nan")))
        assert result.is_empty
        assert result.value == 0.0
        assert result.confidence == 0.0
        assert result.factor == 1.35
        assert cal.history == ()

    def test_unknown_measurement_yields_empty_result(self):
        assert _calibrator().calibrate(90, REFERENCE, "glucose").is_empty


class TestRangeDamping:

    @pytest.mark.parametrize("raw", [5.0, 20.0, 60.0, 100.0, 150.0, 400.0, 2000.0])
    def test_damped_output_never_exceeds_raw_excess(self, raw):
        cal = _calibrator()
        result = cal.calibrate(raw, REFERENCE, MeasurementType.BPM)
        pre_clamp = cal.apply_calibration(raw, result.factor)
        lo, hi = 45.0, 180.0
        if pre_clamp > hi:
            assert hi <= result.value <= pre_clamp
            assert result.value - hi == pytest.approx((pre_clamp - hi) * 0.5)
        elif pre_clamp < lo:
            assert pre_clamp <= result.value <= lo
        else:
            assert result.value == pytest.approx(pre_clamp)

    def test_spo2_range(self):
        cal = _calibrator()
        assert cal.validate_result(105.0, "spo2") == pytest.approx(102.5)
        assert cal.validate_result(97.0, MeasurementType.SPO2) == 97.0

    def test_confidence_bounded(self):
        cal = _calibrator()
        for q in (0.0, 0.2, 0.5, 0.9, 1.0, 1.5, -0.5):
            result = cal.calibrate(90, SignalConditions(signal_quality=q))
            assert 0.0 <= result.confidence <= 1.0


class TestDeterminism:

    def test_independent_calibrators_agree(self):
        sequence = [
            (72.0, REFERENCE),
            (75.0, SignalConditions(signal_quality=0.8, light_level=0.6, movement=0.1)),
            (98.0, SignalConditions(signal_quality=0.9)),
            (71.0, REFERENCE),
        ]
        a, b = _calibrator(), _calibrator()
        out_a = [a.calibrate(raw, cond) for raw, cond in sequence]
        out_b = [b.calibrate(raw, cond) for raw, cond in sequence]
        assert out_a == out_b
