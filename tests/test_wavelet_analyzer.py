"""
Unit tests for WaveletAnalyzer.
Run with:  pytest tests/test_wavelet_analyzer.py
"""

from __future__ import annotations

import numpy as np
import pytest

from vitals_monitor.config import WaveletConfig
from vitals_monitor.models import Peak
from vitals_monitor.wavelet_analyzer import WaveletAnalyzer


def _sine(n: int = 256, freq_hz: float = 1.2, fps: float = 30.0) -> np.ndarray:
    t = np.arange(n) / fps
    return 150 + 10 * np.sin(2 * np.pi * freq_hz * t)


class TestFilterBank:

    def test_daubechies4_coefficients(self):
        wa = WaveletAnalyzer()
        np.testing.assert_allclose(
            wa._scaling, [0.4829629, 0.8365163, 0.2241439, -0.1294095], atol=1e-6
        )
        np.testing.assert_allclose(
            wa._wavelet, [-0.1294095, -0.2241439, 0.8365163, -0.4829629], atol=1e-6
        )

    def test_decomposition_band_lengths(self):
        wa = WaveletAnalyzer()
        dec = wa.decompose(np.random.default_rng(0).normal(size=256))
        assert dec.levels == 5
        assert [c.size for c in dec.coefficients] == [128, 64, 32, 16, 8, 8]
        assert dec.approximation.size == 8
        assert len(dec.details) == 5

    def test_levels_capped_for_short_signal(self):
        dec = WaveletAnalyzer().decompose(np.ones(16))
        assert 1 <= dec.levels < 5

    def test_band_frequency_ranges(self):
        wa = WaveletAnalyzer(WaveletConfig(sample_rate=30.0))
        assert wa.band_frequency_range(0, 5) == pytest.approx((7.5, 15.0))
        assert wa.band_frequency_range(3, 5) == pytest.approx((0.9375, 1.875))
        assert wa.band_frequency_range(5, 5) == pytest.approx((0.0, 0.46875))


class TestWaveletAnalyzer:

    def test_empty_input(self):
        result = WaveletAnalyzer().analyze_signal([])
        assert result.is_empty
        assert result.quality == 0.0
        assert result.peaks == []

    def test_too_few_samples(self):
        wa = WaveletAnalyzer()
        assert wa.min_samples == 64
        assert wa.analyze_signal(_sine(63)).is_empty
        assert not wa.analyze_signal(_sine(1)).is_empty

    def test_constant_signal_has_zero_quality(self):
        result = WaveletAnalyzer().analyze_signal(np.full(256, 180.0))
        assert not result.is_empty
        assert result.quality == 0.0
        assert result.noise == 0.0
        assert result.characteristics.entropy == 0.0

    def test_pulse_band_energy_dominates_for_sine(self):
        result = WaveletAnalyzer().analyze_signal(_sine())
        ratio = result.characteristics.pulse_energy_ratio
        assert ratio > 0.7, f"Pulse energy ratio too low: {ratio:.2f}"

    def test_white_noise_spreads_energy(self):
        noise = np.random.default_rng(42).normal(150, 10, 256)
        result = WaveletAnalyzer().analyze_signal(noise)
        ratio = result.characteristics.pulse_energy_ratio
        assert ratio < 0.4, f"Pulse energy ratio too high for noise: {ratio:.2f}"

    def test_sine_is_more_ordered_than_noise(self):
        sine = WaveletAnalyzer().analyze_signal(_sine())
        noise = WaveletAnalyzer().analyze_signal(np.random.default_rng(7).normal(150, 10, 256))
        assert sine.characteristics.entropy < noise.characteristics.entropy

    def test_quality_bounded(self):
        rng = np.random.default_rng(1)
        wa = WaveletAnalyzer()
        for _ in range(10):
            result = wa.analyze_signal(rng.normal(150, rng.uniform(0.1, 50), 64))
            assert 0.0 <= result.quality <= 1.0

    def test_window_fill_and_reset(self):
        wa = WaveletAnalyzer()
        wa.analyze_signal(_sine(128))
        assert wa.window_fill_ratio == pytest.approx(0.5)
        assert not wa.last_analysis.is_empty
        wa.reset()
        assert wa.window_fill_ratio == 0.0
        assert wa.last_analysis.is_empty

    def test_peaks_sorted_by_magnitude(self):
        result = WaveletAnalyzer().analyze_signal(_sine())
        mags = [p.magnitude for p in result.peaks]
        assert mags == sorted(mags, reverse=True)


class TestWaveletPeaks:

    def test_estimate_peak_width(self):
        band = np.array([0.0, 1.0, 3.0, 4.0, 3.0, 1.0, 0.0])
        assert WaveletAnalyzer.estimate_peak_width(band, 3) == 3

    def test_merge_keeps_strongest_on_same_level(self):
        peaks = [
            Peak(position=10, magnitude=1.0, level=0),
            Peak(position=12, magnitude=2.0, level=0),
            Peak(position=20, magnitude=1.5, level=0),
            Peak(position=11, magnitude=0.5, level=1),
        ]
        merged = WaveletAnalyzer().merge_similar_peaks(peaks)
        assert {(p.position, p.level) for p in merged} == {(12, 0), (20, 0), (11, 1)}

    def test_peak_frequency_scales_by_level(self):
        # level 2: spacing 5 coefficients × 8 samples = 40 samples → 0.75 Hz
        peaks = [Peak(position=p, magnitude=1.0, width=3, level=2) for p in (0, 5, 10)]
        assert WaveletAnalyzer().peak_frequency(peaks) == pytest.approx(0.75)

    def test_peak_frequency_needs_two_peaks(self):
        assert WaveletAnalyzer().peak_frequency([Peak(position=4, magnitude=1.0, level=1)]) == 0.0

    def test_isolated_peak_is_rejected(self):
        wa = WaveletAnalyzer()
        dec = wa.decompose(np.zeros(256))
        lone = Peak(position=5, magnitude=1.0, width=3, level=3)
        assert wa.validate_peaks([lone], dec) == []

    def test_plausible_peaks_are_kept(self):
        wa = WaveletAnalyzer()
        dec = wa.decompose(np.zeros(256))
        # level 3: 2 coefficients apart × 16 samples = 32 samples → 56 BPM
        peaks = [Peak(position=p, magnitude=1.0, width=2, level=3) for p in (2, 4)]
        assert len(wa.validate_peaks(peaks, dec)) == 2

    def test_implausibly_fast_peaks_are_rejected(self):
        wa = WaveletAnalyzer()
        dec = wa.decompose(np.zeros(256))
        # level 0: 4 coefficients apart × 2 samples = 8 samples → 225 BPM
        peaks = [Peak(position=p, magnitude=1.0, width=3, level=0) for p in (10, 14)]
        assert wa.validate_peaks(peaks, dec) == []
