"""
Unit tests for VitalsEstimator and feature extraction.
Run with:  pytest tests/test_vitals_estimator.py
"""

from __future__ import annotations

import numpy as np
import pytest

from vitals_monitor.config import ProcessingSettings, SensitivitySettings
from vitals_monitor.models import SignalFeatures
from vitals_monitor.vitals_estimator import VitalsEstimator, extract_features

REGULAR_PEAKS = [0, 25, 50, 75]


def _features(peaks=REGULAR_PEAKS, frequency=1.2, amplitude=2.0) -> SignalFeatures:
    return SignalFeatures(peaks=list(peaks), valleys=[], frequency=frequency, amplitude=amplitude)


class TestExtractFeatures:

    def test_amplitude_and_perfusion(self):
        f = extract_features(np.array([1.0, 2.0, 3.0]), [2], [0], 0.0, amplification=2.0)
        assert f.amplitude == pytest.approx(4.0)
        assert f.perfusion_index == pytest.approx(100.0)
        assert f.peaks == [2]
        assert f.valleys == [0]

    def test_empty_signal(self):
        f = extract_features(np.array([]), [], [], 0.0)
        assert f.amplitude == 0.0
        assert f.perfusion_index == 0.0


class TestVitalsEstimator:

    def test_good_signal(self):
        est = VitalsEstimator().estimate(_features(), quality=0.9, sample_count=100)
        assert est.bpm == pytest.approx(72.0)
        assert est.spo2 == 99.0          # round(95 + 0.9 × 4)
        assert est.systolic == 140.0     # 120 + 2 × 10
        assert est.diastolic == 90.0     # 80 + 2 × 5
        assert not est.has_arrhythmia
        assert est.arrhythmia_type == "Normal"

    def test_moderate_quality_withholds_spo2_and_bp(self):
        est = VitalsEstimator().estimate(_features(), quality=0.5, sample_count=100)
        assert est.bpm == pytest.approx(72.0)
        assert est.spo2 == 0.0
        assert est.systolic == 0.0
        assert est.diastolic == 0.0

    def test_spo2_without_bp(self):
        est = VitalsEstimator().estimate(_features(), quality=0.65, sample_count=100)
        assert est.spo2 == 98.0          # round(97.6)
        assert est.systolic == 0.0

    def test_quality_below_heartbeat_threshold(self):
        est = VitalsEstimator().estimate(_features(), quality=0.2, sample_count=100)
        assert est.bpm == 0.0

    def test_heartbeat_threshold_is_configurable(self):
        est = VitalsEstimator(sensitivity=SensitivitySettings(heartbeat_threshold=0.1))
        assert est.estimate(_features(), quality=0.2, sample_count=100).bpm == pytest.approx(72.0)

    def test_too_few_frames(self):
        assert VitalsEstimator().estimate(_features(), quality=0.9, sample_count=10).bpm == 0.0

    def test_too_few_readings_for_spo2(self):
        est = VitalsEstimator().estimate(_features(), quality=0.9, sample_count=20)
        assert est.bpm == pytest.approx(72.0)
        assert est.spo2 == 0.0

    def test_single_peak(self):
        est = VitalsEstimator().estimate(_features(peaks=[10], frequency=0.0), quality=0.9, sample_count=100)
        assert est.bpm == 0.0
        assert est.hrv == 0.0

    def test_too_slow_rhythm(self):
        # 50 samples at 30 fps ≈ 1667 ms between beats
        est = VitalsEstimator().estimate(_features(peaks=[0, 50], frequency=0.6), quality=0.9, sample_count=100)
        assert est.bpm == 0.0

    def test_irregular_rhythm(self):
        est = VitalsEstimator().estimate(
            _features(peaks=[0, 20, 50, 60, 95], frequency=1.26), quality=0.9, sample_count=100
        )
        assert est.hrv > 0.2
        assert est.has_arrhythmia
        assert est.arrhythmia_type == "Irregular"

    def test_no_arrhythmia_without_heart_rate(self):
        est = VitalsEstimator().estimate(
            _features(peaks=[0, 20, 50, 60, 95], frequency=1.26), quality=0.1, sample_count=100
        )
        assert est.bpm == 0.0
        assert not est.has_arrhythmia


class TestHRVMetrics:

    def test_regular_intervals(self):
        m = VitalsEstimator().hrv_metrics([0, 30, 60, 90])
        assert m.sdnn == pytest.approx(0.0)
        assert m.rmssd == pytest.approx(0.0)
        assert m.pnn50 == pytest.approx(0.0)

    def test_varied_intervals(self):
        # intervals 1000, 1100, 900 ms
        m = VitalsEstimator(settings=ProcessingSettings(sample_rate=30.0)).hrv_metrics([0, 30, 63, 90])
        assert m.sdnn == pytest.approx(np.std([1000.0, 1100.0, 900.0]))
        assert m.rmssd == pytest.approx(np.sqrt((100.0 ** 2 + 200.0 ** 2) / 2))
        assert m.pnn50 == pytest.approx(100.0)

    def test_needs_three_peaks(self):
        m = VitalsEstimator().hrv_metrics([0, 30])
        assert (m.sdnn, m.rmssd, m.pnn50) == (0.0, 0.0, 0.0)

    def test_coefficient_of_variation(self):
        assert VitalsEstimator.heart_rate_variability([0, 10, 20, 30]) == pytest.approx(0.0)
        assert VitalsEstimator.heart_rate_variability([0, 10, 30]) == pytest.approx(5.0 / 15.0)


def _modulated_peaks(mod_hz: float, beats: int = 150) -> list:
    """Beat positions in ms whose intervals swing ±100 ms around 800 ms at *mod_hz*."""
    t_ms = 0.0
    positions = [0]
    for _ in range(beats):
        interval = 800.0 + 100.0 * np.sin(2 * np.pi * mod_hz * t_ms / 1000.0)
        t_ms += interval
        positions.append(int(round(t_ms)))
    return positions


class TestLFHF:

    def _estimator(self) -> VitalsEstimator:
        # positions in milliseconds
        return VitalsEstimator(settings=ProcessingSettings(sample_rate=1000.0))

    def test_slow_modulation_is_low_frequency(self):
        m = self._estimator().hrv_metrics(_modulated_peaks(0.1))
        assert m.lfhf > 1.0, f"Expected LF-dominant ratio, got {m.lfhf:.2f}"

    def test_fast_modulation_is_high_frequency(self):
        m = self._estimator().hrv_metrics(_modulated_peaks(0.3))
        assert 0.0 < m.lfhf < 1.0, f"Expected HF-dominant ratio, got {m.lfhf:.2f}"

    def test_short_series(self):
        m = self._estimator().hrv_metrics(_modulated_peaks(0.1, beats=8))
        assert m.lfhf == 0.0

    def test_constant_rhythm(self):
        peaks = [i * 800 for i in range(60)]
        assert self._estimator().hrv_metrics(peaks).lfhf == 0.0
