"""
Vital-sign estimation from waveform features.

Heart rate follows from the detected pulse frequency.  SpO2 and blood
pressure use simple linear formulas of signal quality and pulse amplitude;
they are heuristic placeholders, not a calibrated clinical model, and are
only produced once the signal is good enough.

Notes
-----
- True pulse oximetry needs red (~660 nm) and infrared (~940 nm) light; a
  phone camera sees only visible light.
- Results should be considered indicative, not clinical-grade.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from scipy.integrate import trapezoid
from scipy.signal import welch

from vitals_monitor.config import ProcessingSettings, SensitivitySettings, VitalsConfig
from vitals_monitor.models import HRVMetrics, SignalFeatures, VitalsEstimate

logger = logging.getLogger(__name__)


def extract_features(
    signal: np.ndarray,
    peaks: Sequence[int],
    valleys: Sequence[int],
    frequency: float,
    amplification: float = 1.0,
) -> SignalFeatures:
    """
    Bundle detector output with amplitude and perfusion index of *signal*.

    Perfusion index is ``(max − min) / mean`` in percent.
    """
    arr = np.asarray(signal, dtype=np.float64)
    if arr.size == 0:
        return SignalFeatures(peaks=list(peaks), valleys=list(valleys), frequency=frequency)
    span = float(np.max(arr) - np.min(arr))
    mean = float(np.mean(arr))
    perfusion = span / mean * 100.0 if mean != 0 else 0.0
    return SignalFeatures(
        peaks=list(peaks),
        valleys=list(valleys),
        frequency=frequency,
        amplitude=span * amplification,
        perfusion_index=perfusion,
    )


class VitalsEstimator:
    """
    Parameters
    ----------
    config:
        Heuristic model constants.
    settings:
        Processing constants (sample gates, rate, peak-distance limits).
    sensitivity:
        User sensitivity; ``heartbeat_threshold`` gates BPM output.
    """

    def __init__(
        self,
        config: VitalsConfig | None = None,
        settings: ProcessingSettings | None = None,
        sensitivity: SensitivitySettings | None = None,
    ) -> None:
        self.config = config or VitalsConfig()
        self.settings = settings or ProcessingSettings()
        self.sensitivity = sensitivity or SensitivitySettings()

    def estimate(
        self,
        features: SignalFeatures,
        quality: float,
        sample_count: int,
    ) -> VitalsEstimate:
        """
        Derive raw (uncalibrated) vitals.

        Each vital is 0 when its gate is not met, meaning "not yet
        measurable" rather than a reading.
        """
        cfg = self.config
        s = self.settings

        bpm = 0.0
        if (
            sample_count >= s.min_frames_for_calculation
            and len(features.peaks) >= s.min_peaks_for_valid_hr
            and quality >= self.sensitivity.heartbeat_threshold
        ):
            bpm = features.frequency * 60.0
            mean_interval_ms = self._mean_interval_ms(features.peaks)
            if mean_interval_ms > s.max_peak_distance_ms:
                logger.debug("Pulse interval %.0f ms too long; no rhythm.", mean_interval_ms)
                bpm = 0.0

        spo2 = 0.0
        if quality > cfg.spo2_min_quality and sample_count >= s.min_valid_readings:
            spo2 = float(round(cfg.spo2_base + quality * cfg.spo2_quality_gain))

        systolic = diastolic = 0.0
        if quality > cfg.bp_min_quality and sample_count >= s.min_valid_readings:
            systolic = float(round(cfg.systolic_base + features.amplitude * cfg.systolic_gain))
            diastolic = float(round(cfg.diastolic_base + features.amplitude * cfg.diastolic_gain))

        hrv = self.heart_rate_variability(features.peaks)
        has_arrhythmia = bpm > 0 and hrv > cfg.arrhythmia_hrv_threshold

        return VitalsEstimate(
            bpm=bpm,
            spo2=spo2,
            systolic=systolic,
            diastolic=diastolic,
            hrv=hrv,
            has_arrhythmia=has_arrhythmia,
            arrhythmia_type="Irregular" if has_arrhythmia else "Normal",
            hrv_metrics=self.hrv_metrics(features.peaks),
        )

    @staticmethod
    def heart_rate_variability(peaks: Sequence[int]) -> float:
        """Coefficient of variation of the inter-peak intervals."""
        if len(peaks) < 2:
            return 0.0
        intervals = np.diff(np.asarray(peaks, dtype=np.float64))
        mean = float(np.mean(intervals))
        if mean <= 0:
            return 0.0
        return float(np.std(intervals)) / mean

    def hrv_metrics(self, peaks: Sequence[int]) -> HRVMetrics:
        """SDNN, RMSSD (ms), pNN50 (%) and LF/HF ratio of the inter-peak intervals."""
        if len(peaks) < 3:
            return HRVMetrics()
        intervals_ms = np.diff(np.asarray(peaks, dtype=np.float64)) * 1000.0 / self.settings.sample_rate
        successive = np.diff(intervals_ms)
        return HRVMetrics(
            sdnn=float(np.std(intervals_ms)),
            rmssd=float(np.sqrt(np.mean(successive ** 2))),
            pnn50=float(np.mean(np.abs(successive) > self.config.pnn50_threshold_ms) * 100.0),
            lfhf=self.lf_hf_ratio(intervals_ms),
        )

    def lf_hf_ratio(self, intervals_ms: np.ndarray) -> float:
        """
        Ratio of low- to high-frequency power of the interval series.

        The tachogram is resampled onto an even grid and its spectrum
        estimated with Welch's method.  Returns 0.0 for series shorter than
        ``lfhf_min_intervals`` or without high-frequency power.
        """
        cfg = self.config
        intervals_ms = np.asarray(intervals_ms, dtype=np.float64)
        if intervals_ms.size < cfg.lfhf_min_intervals:
            return 0.0

        beat_times = np.cumsum(intervals_ms) / 1000.0
        grid = np.arange(beat_times[0], beat_times[-1], 1.0 / cfg.hrv_resample_rate)
        if grid.size < 4:
            return 0.0
        tachogram = np.interp(grid, beat_times, intervals_ms)

        freqs, psd = welch(
            tachogram,
            fs=cfg.hrv_resample_rate,
            nperseg=min(cfg.hrv_welch_segment, tachogram.size),
        )
        lf_mask = (freqs >= cfg.lf_band[0]) & (freqs <= cfg.lf_band[1])
        hf_mask = (freqs >= cfg.hf_band[0]) & (freqs <= cfg.hf_band[1])
        lf = float(trapezoid(psd[lf_mask], freqs[lf_mask])) if lf_mask.sum() > 1 else 0.0
        hf = float(trapezoid(psd[hf_mask], freqs[hf_mask])) if hf_mask.sum() > 1 else 0.0
        if hf <= 0:
            return 0.0
        return lf / hf

    def _mean_interval_ms(self, peaks: Sequence[int]) -> float:
        if len(peaks) < 2:
            return 0.0
        return float(np.mean(np.diff(peaks))) * 1000.0 / self.settings.sample_rate
