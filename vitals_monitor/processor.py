"""
Per-session PPG processing pipeline.

Algorithm
---------
1. Gate each frame on finger contact (coverage, brightness, debounce).
2. Extract the mean red intensity and append it to the raw buffer.
3. Smooth the stream with a centred moving average; smoothed samples go to
   the processed buffer and the wavelet analyser's window.
4. Score quality twice: heuristically from raw intensity, and from the
   wavelet decomposition.  The heuristic score decides whether a finger is
   usable; once the wavelet window is analysable both are mixed.
5. Detect peaks / valleys on the processed window, derive features and
   raw vitals, then refine them with the adaptive calibrator.

Single-threaded and frame-driven: one synchronous cycle per frame, no
locking.  Concurrent sessions each need their own :class:`PPGProcessor`.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Deque, List, Optional

import numpy as np

from vitals_monitor.calibrator import AdaptiveCalibrator
from vitals_monitor.channel_extractor import ChannelExtractor
from vitals_monitor.config import (
    CalibrationConfig,
    ProcessingSettings,
    QualityConfig,
    SensitivitySettings,
    VitalsConfig,
    WaveletConfig,
    update_sensitivity,
)
from vitals_monitor.finger_detector import FingerDetector
from vitals_monitor.models import (
    FrameLike,
    MeasurementType,
    ProcessedPPGSignal,
    SignalConditions,
    VitalReading,
    VitalsEstimate,
    WaveletAnalysis,
)
from vitals_monitor.peak_detector import PeakValleyDetector
from vitals_monitor.ring_buffer import RingSampleBuffer
from vitals_monitor.signal_quality import SignalQualityAnalyzer
from vitals_monitor.smoothing import MovingAverageFilter, radius_for
from vitals_monitor.vitals_estimator import VitalsEstimator, extract_features
from vitals_monitor.wavelet_analyzer import WaveletAnalyzer

logger = logging.getLogger(__name__)


class PPGProcessor:
    """
    Fingertip PPG vitals pipeline for one measurement session.

    Parameters
    ----------
    settings:
        Static processing constants (rates, gates, buffer sizes).
    sensitivity:
        User sensitivity knobs; change later with
        :meth:`update_sensitivity_settings`.
    wavelet_config, quality_config, calibration_config, vitals_config:
        Per-component constants.
    clock:
        Returns epoch milliseconds; used when a frame carries no timestamp
        and by the calibrator.
    heuristic_weight:
        Share of the heuristic score in the combined quality once the
        wavelet analysis is available (the wavelet score gets the rest).
    """

    def __init__(
        self,
        settings: ProcessingSettings | None = None,
        sensitivity: SensitivitySettings | None = None,
        wavelet_config: WaveletConfig | None = None,
        quality_config: QualityConfig | None = None,
        calibration_config: CalibrationConfig | None = None,
        vitals_config: VitalsConfig | None = None,
        clock=None,
        heuristic_weight: float = 0.5,
    ) -> None:
        self.settings = settings or ProcessingSettings()
        self._sensitivity = sensitivity or SensitivitySettings()
        self._clock = clock or (lambda: time.time() * 1000.0)
        self.heuristic_weight = heuristic_weight

        s = self.settings
        self._raw = RingSampleBuffer(s.buffer_capacity)
        self._processed = RingSampleBuffer(s.buffer_capacity)
        self._quality = RingSampleBuffer(s.quality_history_capacity)
        self._readings: Deque[VitalReading] = deque(
            maxlen=int(s.measurement_duration_s * s.sample_rate)
        )

        self._quality_analyzer = SignalQualityAnalyzer(quality_config)
        self._wavelet = WaveletAnalyzer(
            wavelet_config or WaveletConfig(sample_rate=s.sample_rate)
        )
        self._calibrator = AdaptiveCalibrator(calibration_config, clock=self._clock)
        self._vitals_config = vitals_config
        self._extractor = ChannelExtractor()
        self._finger = FingerDetector(s)
        self._filter: Optional[MovingAverageFilter] = None

        self._apply_sensitivity()

        self._last_analysis: WaveletAnalysis = WaveletAnalysis.empty()
        self._last_bpm: float = 0.0
        self._started_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process_frame(self, frame: FrameLike, timestamp_ms: float | None = None) -> ProcessedPPGSignal:
        """
        Run one processing cycle for *frame*.

        Returns :meth:`ProcessedPPGSignal.no_signal` for empty frames or
        while no finger is on the lens.
        """
        ts = float(timestamp_ms) if timestamp_ms is not None else float(self._clock())

        finger = self._finger.update(frame, ts)
        sample = self._extractor.extract(frame, ts)
        if sample is None:
            return ProcessedPPGSignal.no_signal(ts)
        if not finger.present:
            if len(self._raw):
                self._clear_samples()
                logger.info("Sample buffers cleared after losing contact.")
            return ProcessedPPGSignal.no_signal(ts, finger_detected=False)

        if self._started_at is None:
            self._started_at = ts
        red = sample.value
        self._raw.push(sample)

        smoothed = self._filter.push(red)
        if smoothed is not None:
            self._processed.append(smoothed, ts)
            analysis = self._wavelet.analyze_signal([smoothed])
            if not analysis.is_empty:
                self._last_analysis = analysis

        raw_window = self._raw.values()
        heuristic = self._quality_analyzer.analyze_signal_quality(raw_window)
        quality = self._combined_quality(heuristic, self._last_analysis)
        self._quality.append(quality, ts)

        window = self._analysis_window()
        peaks = self._detector.find_peaks(window)
        valleys = self._detector.find_valleys(window)
        frequency = self._detector.frequency(peaks)
        features = extract_features(
            window, peaks, valleys, frequency,
            amplification=self._sensitivity.signal_amplification,
        )

        estimate = self._estimator.estimate(features, quality, len(self._processed))
        conditions = self._conditions(quality, finger.brightness, finger.coverage, raw_window)
        bpm, spo2, systolic, diastolic, confidence = self._calibrated(estimate, conditions, quality)

        latest = float(window[-1]) if window.size else red
        reading = VitalReading(timestamp=ts, value=latest)
        self._readings.append(reading)

        logger.debug(
            "frame ts=%.0f red=%.1f q=%.2f (heur=%.2f wav=%.2f) peaks=%d bpm=%d",
            ts, red, quality, heuristic, self._last_analysis.quality, len(peaks), bpm,
        )

        return ProcessedPPGSignal(
            signal=window,
            quality=quality,
            features=features,
            bpm=bpm,
            spo2=spo2,
            systolic=systolic,
            diastolic=diastolic,
            has_arrhythmia=estimate.has_arrhythmia,
            arrhythmia_type=estimate.arrhythmia_type,
            confidence=confidence,
            timestamp=ts,
            readings=[reading],
            hrv_metrics=estimate.hrv_metrics,
            finger_detected=True,
        )

    def update_sensitivity_settings(self, **changes) -> SensitivitySettings:
        """Replace individual sensitivity fields and rebuild dependent stages."""
        self._sensitivity = update_sensitivity(self._sensitivity, **changes)
        self._apply_sensitivity()
        logger.info("Sensitivity updated: %s", self._sensitivity)
        return self._sensitivity

    def reset(self) -> None:
        """Start a new session: clear sample buffers and calibration history."""
        self._clear_samples()
        self._calibrator.reset()
        self._readings.clear()
        self._finger.reset()
        logger.info("Session reset.")

    @property
    def sensitivity(self) -> SensitivitySettings:
        return self._sensitivity

    @property
    def buffer_fill_ratio(self) -> float:
        """How full the raw sample buffer is (0 – 1)."""
        return self._raw.fill_ratio

    @property
    def readings(self) -> List[VitalReading]:
        return list(self._readings)

    @property
    def last_bpm(self) -> float:
        return self._last_bpm

    @property
    def calibrator(self) -> AdaptiveCalibrator:
        return self._calibrator

    @property
    def measurement_progress(self) -> float:
        """Elapsed fraction of the measurement duration (0 – 1)."""
        if self._started_at is None or not len(self._raw):
            return 0.0
        elapsed_s = (self._raw.timestamps()[-1] - self._started_at) / 1000.0
        return float(min(1.0, max(0.0, elapsed_s / self.settings.measurement_duration_s)))

    @property
    def measurement_complete(self) -> bool:
        return self.measurement_progress >= 1.0

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _apply_sensitivity(self) -> None:
        s = self.settings
        sens = self._sensitivity
        self._extractor.red_gain = sens.red_intensity or 1.0
        self._finger.brightness_gain = sens.brightness or 1.0

        radius = radius_for(sens.noise_reduction)
        if self._filter is None or self._filter.radius != radius:
            self._filter = MovingAverageFilter(radius)

        min_distance = int(s.min_peak_distance_ms * s.sample_rate / 1000.0)
        self._detector = PeakValleyDetector(
            sample_rate=s.sample_rate,
            threshold_factor=s.peak_threshold_factor * sens.peak_detection,
            min_distance=min_distance,
        )
        self._estimator = VitalsEstimator(self._vitals_config, s, sens)

    def _clear_samples(self) -> None:
        self._raw.clear()
        self._processed.clear()
        self._quality.clear()
        self._filter.reset()
        self._wavelet.reset()
        self._last_analysis = WaveletAnalysis.empty()
        self._last_bpm = 0.0
        self._started_at = None

    def _analysis_window(self) -> np.ndarray:
        n = int(self._processed.capacity * min(1.0, max(0.0, self._sensitivity.response_time)))
        return self._processed.latest(max(n, 3))

    def _combined_quality(self, heuristic: float, analysis: WaveletAnalysis) -> float:
        if heuristic <= 0:
            return 0.0
        if analysis.is_empty:
            return heuristic
        w = self.heuristic_weight
        return float(min(1.0, max(0.0, w * heuristic + (1 - w) * analysis.quality)))

    def _conditions(
        self,
        quality: float,
        brightness: float,
        coverage: float,
        raw_window: np.ndarray,
    ) -> SignalConditions:
        cfg = self._quality_analyzer.config
        recent = raw_window[-cfg.stability_window:]
        movement = abs(self._quality_analyzer.trend(recent)) / cfg.trend_limit
        history = self._quality.latest(cfg.stability_window * 2)
        stability = 1.0 - 2.0 * float(np.std(history)) if history.size >= 2 else 0.5
        return SignalConditions(
            signal_quality=quality,
            light_level=float(min(1.0, brightness / 255.0)),
            movement=float(min(1.0, movement)),
            coverage=float(coverage),
            temperature=self.settings.ambient_temperature,
            stability=float(min(1.0, max(0.0, stability))),
        )

    def _calibrated(self, estimate: VitalsEstimate, conditions: SignalConditions, quality: float):
        values = {
            MeasurementType.BPM: estimate.bpm,
            MeasurementType.SPO2: estimate.spo2,
            MeasurementType.SYSTOLIC: estimate.systolic,
            MeasurementType.DIASTOLIC: estimate.diastolic,
        }
        confidence = quality
        if self.settings.apply_calibration:
            for measurement, raw in values.items():
                if raw <= 0:
                    continue
                result = self._calibrator.calibrate(raw, conditions, measurement)
                if result.is_empty:
                    values[measurement] = 0.0
                    continue
                values[measurement] = result.value
                if measurement is MeasurementType.BPM:
                    confidence = result.confidence

        bpm = values[MeasurementType.BPM]
        alpha = self._sensitivity.signal_stability
        if bpm > 0 and self._last_bpm > 0 and alpha > 0:
            bpm = alpha * self._last_bpm + (1 - alpha) * bpm
        self._last_bpm = bpm

        spo2 = min(100.0, values[MeasurementType.SPO2])
        if spo2 < self.settings.min_spo2:
            spo2 = 0.0

        return (
            int(round(bpm)),
            int(round(spo2)),
            int(round(values[MeasurementType.SYSTOLIC])),
            int(round(values[MeasurementType.DIASTOLIC])),
            float(min(1.0, max(0.0, confidence))),
        )

