"""
PPG signal quality and pulse-peak analysis using a discrete wavelet transform.

Algorithm
---------
1. Keep a rolling window of the last ``window_size`` smoothed samples.
2. Remove the window mean and run a stride-2 Daubechies-4 (4-tap) filter
   bank for up to ``levels`` levels, feeding each approximation into the
   next level.  Edges are not padded: taps falling past the end of the
   sequence contribute nothing.
3. Measure subband energies and their Shannon entropy.
4. Find peaks per detail band above ``2.5 × MAD``, estimate their widths,
   merge neighbours and keep only physiologically plausible, well-shaped,
   stable ones.
5. Estimate noise from the finest detail band (``MAD / 0.6745``) and score
   the window as ``0.4 · energy + 0.3 · entropy + 0.3 · peaks``.

References
----------
- Daubechies I., "Ten Lectures on Wavelets." SIAM, 1992.
- Donoho D.L., Johnstone I.M., "Ideal spatial adaptation by wavelet
  shrinkage." Biometrika, 1994.  (MAD / 0.6745 noise estimator)
- Rosso O.A. et al., "Wavelet entropy: a new tool for analysis of short
  duration brain electrical signals." J. Neurosci. Methods, 2001.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pywt
from scipy.stats import entropy, median_abs_deviation

from vitals_monitor.config import WaveletConfig
from vitals_monitor.models import (
    Peak,
    SignalCharacteristics,
    WaveletAnalysis,
    WaveletDecomposition,
)
from vitals_monitor.ring_buffer import RingSampleBuffer

logger = logging.getLogger(__name__)


def _clamp01(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


class WaveletAnalyzer:
    """
    Rolling multi-resolution analyser of the smoothed PPG waveform.

    Parameters
    ----------
    config:
        Analysis constants (levels, window, thresholds, quality weights).
        The filter bank is taken from ``pywt.Wavelet(config.wavelet)``.
    """

    def __init__(self, config: WaveletConfig | None = None) -> None:
        self.config = config or WaveletConfig()

        bank = pywt.Wavelet(self.config.wavelet)
        self._scaling = np.asarray(bank.rec_lo, dtype=np.float64)
        self._wavelet = np.asarray(bank.rec_hi, dtype=np.float64)

        self._window = RingSampleBuffer(self.config.window_size)
        self.min_samples: int = 2 ** (self.config.levels + 1)
        self._last_analysis: WaveletAnalysis = WaveletAnalysis.empty()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def analyze_signal(self, samples: Sequence[float] | np.ndarray) -> WaveletAnalysis:
        """
        Append *samples* to the window and analyse it.

        Returns :meth:`WaveletAnalysis.empty` when no samples are given,
        while the window is shorter than :attr:`min_samples`, or when the
        analysis fails.
        """
        try:
            values = np.asarray(samples, dtype=np.float64).ravel()
            if values.size == 0:
                return WaveletAnalysis.empty()
            self._window.extend(values)
            if len(self._window) < self.min_samples:
                return WaveletAnalysis.empty()

            signal = self._window.values()
            signal = signal - np.mean(signal)

            decomposition = self.decompose(signal)
            energies = self.subband_energies(decomposition)
            band_entropy = self.wavelet_entropy(energies)
            noise = self.noise_level(decomposition)

            candidates = self.find_wavelet_peaks(decomposition)
            peaks = self.validate_peaks(candidates, decomposition)
            peaks.sort(key=lambda p: p.magnitude, reverse=True)

            frequency = self.peak_frequency(peaks)
            pulse_ratio = self.pulse_energy_ratio(energies, decomposition.levels)

            quality = self._composite_quality(
                pulse_ratio, band_entropy, len(energies), energies, peaks, noise
            )

            std = float(np.std(signal))
            analysis = WaveletAnalysis(
                quality=quality,
                peaks=peaks,
                noise=noise,
                frequency=frequency,
                characteristics=SignalCharacteristics(
                    energy=float(sum(energies)),
                    entropy=band_entropy,
                    dominant_frequency=frequency,
                    signal_to_noise=std / noise if noise > 0 else 0.0,
                    pulse_energy_ratio=pulse_ratio,
                ),
                band_energies=energies,
            )
            self._last_analysis = analysis
            return analysis

        except Exception as e:
            logger.warning("Wavelet analysis failed: %s", e)
            return WaveletAnalysis.empty()

    @property
    def last_analysis(self) -> WaveletAnalysis:
        return self._last_analysis

    @property
    def window_fill_ratio(self) -> float:
        """How full the analysis window is (0 – 1)."""
        return self._window.fill_ratio

    def reset(self) -> None:
        """Clear the analysis window."""
        self._window.clear()
        self._last_analysis = WaveletAnalysis.empty()

    # ------------------------------------------------------------------
    # Decomposition and band statistics
    # ------------------------------------------------------------------

    def decompose(self, signal: np.ndarray) -> WaveletDecomposition:
        """
        Multi-level stride-2 decomposition of *signal*.

        The number of levels is capped by ``pywt.dwt_max_level`` so the
        coarsest band still holds at least one full filter support.
        """
        max_level = pywt.dwt_max_level(signal.size, self._scaling.size)
        levels = max(1, min(self.config.levels, max_level))

        coefficients: List[np.ndarray] = []
        approximation = np.asarray(signal, dtype=np.float64)
        for _ in range(levels):
            approximation, detail = self._split(approximation)
            coefficients.append(detail)
        coefficients.append(approximation)
        return WaveletDecomposition(coefficients=coefficients, levels=levels)

    @staticmethod
    def subband_energies(decomposition: WaveletDecomposition) -> List[float]:
        return [float(np.sum(band ** 2)) for band in decomposition.coefficients]

    @staticmethod
    def wavelet_entropy(energies: Sequence[float]) -> float:
        """Shannon entropy (bits) of the relative band energies."""
        total = float(sum(energies))
        if total <= 0:
            return 0.0
        return float(entropy(np.asarray(energies, dtype=np.float64), base=2))

    def noise_level(self, decomposition: WaveletDecomposition) -> float:
        """Robust noise sigma from the finest detail band."""
        finest = decomposition.coefficients[0]
        if finest.size == 0:
            return 0.0
        return float(median_abs_deviation(finest, scale=self.config.noise_scale))

    def band_frequency_range(self, band: int, levels: int) -> Tuple[float, float]:
        """Nominal ``(low, high)`` frequency in Hz covered by coefficient set *band*."""
        fs = self.config.sample_rate
        if band >= levels:
            return 0.0, fs / 2 ** (levels + 1)
        return fs / 2 ** (band + 2), fs / 2 ** (band + 1)

    def pulse_energy_ratio(self, energies: Sequence[float], levels: int) -> float:
        """Fraction of energy in bands overlapping the heart-rate range."""
        total = float(sum(energies))
        if total <= 0:
            return 0.0
        low_hz = self.config.min_bpm / 60.0
        high_hz = self.config.max_bpm / 60.0
        pulse = 0.0
        for band, energy in enumerate(energies):
            lo, hi = self.band_frequency_range(band, levels)
            if hi > low_hz and lo < high_hz:
                pulse += energy
        return _clamp01(pulse / total)

    # ------------------------------------------------------------------
    # Peaks
    # ------------------------------------------------------------------

    def find_wavelet_peaks(self, decomposition: WaveletDecomposition) -> List[Peak]:
        """Candidate peaks of every detail band, merged per level."""
        peaks: List[Peak] = []
        for level, band in enumerate(decomposition.details):
            if band.size < 3:
                continue
            threshold = self.config.threshold_mad_factor * float(median_abs_deviation(band))
            mid = band[1:-1]
            mask = (mid > threshold) & (mid > band[:-2]) & (mid > band[2:])
            for idx in np.nonzero(mask)[0] + 1:
                i = int(idx)
                peaks.append(Peak(
                    position=i,
                    magnitude=float(band[i]),
                    width=self.estimate_peak_width(band, i),
                    level=level,
                ))
        return self.merge_similar_peaks(peaks)

    @staticmethod
    def estimate_peak_width(band: np.ndarray, index: int) -> int:
        """Samples around *index* that stay above half the peak magnitude."""
        half = band[index] * 0.5
        width = 1
        left = index - 1
        while left >= 0 and band[left] > half:
            width += 1
            left -= 1
        right = index + 1
        while right < band.size and band[right] > half:
            width += 1
            right += 1
        return width

    def merge_similar_peaks(self, peaks: List[Peak]) -> List[Peak]:
        """Keep the strongest peak among those of one level within ``merge_distance``."""
        merged: List[Peak] = []
        for peak in sorted(peaks, key=lambda p: p.magnitude, reverse=True):
            duplicate = any(
                p.level == peak.level
                and abs(p.position - peak.position) <= self.config.merge_distance
                for p in merged
            )
            if not duplicate:
                merged.append(peak)
        return merged

    def validate_peaks(
        self, peaks: List[Peak], decomposition: WaveletDecomposition
    ) -> List[Peak]:
        by_level: Dict[int, List[Peak]] = defaultdict(list)
        for peak in peaks:
            by_level[peak.level].append(peak)

        valid = []
        for peak in peaks:
            siblings = by_level[peak.level]
            band_len = decomposition.coefficients[peak.level].size
            if (
                self._is_physiological(peak, siblings)
                and self._has_good_shape(peak, band_len)
                and self._is_stable(peak, siblings)
            ):
                valid.append(peak)
        return valid

    def peak_frequency(self, peaks: List[Peak]) -> float:
        """
        Pulse frequency (Hz) from the best-populated level.

        Peak spacing at level ``l`` is scaled by ``2 ** (l + 1)`` samples.
        """
        by_level: Dict[int, List[int]] = defaultdict(list)
        for peak in peaks:
            by_level[peak.level].append(peak.position)
        populated = [(len(pos), -lvl, lvl) for lvl, pos in by_level.items() if len(pos) >= 2]
        if not populated:
            return 0.0
        _, _, level = max(populated)
        positions = np.sort(np.asarray(by_level[level]))
        distance = float(np.mean(np.diff(positions))) * 2 ** (level + 1)
        if distance <= 0:
            return 0.0
        return self.config.sample_rate / distance

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _split(self, signal: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        n = signal.size
        half = n // 2
        padded = np.concatenate((signal, np.zeros(self._scaling.size - 1)))
        approximation = np.correlate(padded, self._scaling, mode="valid")[: 2 * half : 2]
        detail = np.correlate(padded, self._wavelet, mode="valid")[: 2 * half : 2]
        return approximation, detail

    def _is_physiological(self, peak: Peak, siblings: List[Peak]) -> bool:
        spacing = 2 ** (peak.level + 1)
        distances = [
            abs(p.position - peak.position) * spacing
            for p in siblings
            if p is not peak and p.position != peak.position
        ]
        if not distances:
            return False
        bpm = 60.0 * self.config.sample_rate / min(distances)
        return self.config.min_bpm <= bpm <= self.config.max_bpm

    def _has_good_shape(self, peak: Peak, band_len: int) -> bool:
        return self.config.min_peak_width <= peak.width <= self.config.max_width_fraction * band_len

    def _is_stable(self, peak: Peak, siblings: List[Peak]) -> bool:
        nearby = [
            p.magnitude for p in siblings
            if abs(p.position - peak.position) <= self.config.stability_radius
        ]
        if len(nearby) < 3:
            return True
        mean = float(np.mean(nearby))
        if mean <= 0:
            return False
        return float(np.std(nearby)) / mean <= self.config.max_magnitude_cv

    def _composite_quality(
        self,
        pulse_ratio: float,
        band_entropy: float,
        n_bands: int,
        energies: Sequence[float],
        peaks: List[Peak],
        noise: float,
    ) -> float:
        cfg = self.config
        energy_quality = pulse_ratio

        if sum(energies) > 0 and n_bands > 1:
            entropy_quality = _clamp01(1.0 - band_entropy / np.log2(n_bands))
        else:
            entropy_quality = 0.0

        if peaks:
            mean_mag = float(np.mean([p.magnitude for p in peaks]))
            strength = mean_mag / (mean_mag + noise) if mean_mag + noise > 0 else 0.0
            count = min(1.0, len(peaks) / cfg.min_expected_peaks)
            peak_quality = _clamp01(count * strength)
        else:
            peak_quality = 0.0

        return _clamp01(
            cfg.energy_weight * energy_quality
            + cfg.entropy_weight * entropy_quality
            + cfg.peak_weight * peak_quality
        )
