"""
Configuration records for the PPG pipeline.

Every component receives one frozen dataclass holding its thresholds,
weights and constants, so tests can substitute values deterministically.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class SensitivitySettings:
    """
    User-tunable sensitivity knobs.

    Parameters
    ----------
    signal_amplification:
        Gain applied to the pulsatile amplitude feature.
    noise_reduction:
        Multiplier on the moving-average radius (1.0 → radius 5).
    peak_detection:
        Multiplier on the peak threshold factor (1.0 → μ ± 0.5σ).
    heartbeat_threshold:
        Minimum signal quality (0 – 1) before a BPM value is reported.
    response_time:
        Fraction of the sample buffer used as the peak-detection window.
    signal_stability:
        Weight of the previous BPM in exponential output smoothing
        (0 disables smoothing).
    brightness:
        Optional multiplier on the minimum brightness for finger detection.
    red_intensity:
        Optional gain applied to the extracted red intensity.
    """

    signal_amplification: float = 1.0
    noise_reduction: float = 1.0
    peak_detection: float = 1.0
    heartbeat_threshold: float = 0.3
    response_time: float = 1.0
    signal_stability: float = 0.0
    brightness: Optional[float] = None
    red_intensity: Optional[float] = None


def update_sensitivity(current: SensitivitySettings, **changes) -> SensitivitySettings:
    """
    Return a copy of *current* with the given fields replaced.

    Fields are applied one by one; ``None`` leaves a field unchanged and an
    unknown name raises :class:`ValueError`.
    """
    known = {f.name for f in fields(SensitivitySettings)}
    updates: Dict[str, float] = {}
    for name, value in changes.items():
        if name not in known:
            raise ValueError(f"Unknown sensitivity setting: {name!r}")
        if value is None:
            continue
        updates[name] = float(value)
    return replace(current, **updates)


@dataclass(frozen=True)
class ProcessingSettings:
    """Static processing constants consumed by the pipeline."""

    measurement_duration_s: float = 30.0
    min_frames_for_calculation: int = 15
    min_peaks_for_valid_hr: int = 2
    min_peak_distance_ms: float = 333.0     # 180 BPM
    max_peak_distance_ms: float = 1333.0    # 45 BPM
    peak_threshold_factor: float = 0.5
    min_red_value: float = 15.0
    min_red_dominance: float = 1.2
    min_valid_pixels_ratio: float = 0.2
    min_brightness: float = 80.0
    min_valid_readings: int = 30
    finger_detection_delay_ms: float = 500.0
    min_spo2: float = 75.0
    sample_rate: float = 30.0
    buffer_capacity: int = 256
    quality_history_capacity: int = 64
    ambient_temperature: float = 20.0
    apply_calibration: bool = True


@dataclass(frozen=True)
class PhysiologicalRange:
    minimum: float
    maximum: float

    def contains(self, value: float) -> bool:
        return self.minimum <= value <= self.maximum


PHYSIOLOGICAL_RANGES: Dict[str, PhysiologicalRange] = {
    "bpm": PhysiologicalRange(45.0, 180.0),
    "spo2": PhysiologicalRange(70.0, 100.0),
    "systolic": PhysiologicalRange(90.0, 180.0),
    "diastolic": PhysiologicalRange(60.0, 120.0),
}


@dataclass(frozen=True)
class WaveletConfig:
    """Constants of the wavelet quality / peak analysis."""

    levels: int = 5
    window_size: int = 256
    wavelet: str = "db2"
    sample_rate: float = 30.0
    min_bpm: float = 45.0
    max_bpm: float = 180.0
    threshold_mad_factor: float = 2.5
    merge_distance: int = 3
    noise_scale: float = 0.6745
    min_peak_width: int = 2
    max_width_fraction: float = 0.5
    stability_radius: int = 8
    max_magnitude_cv: float = 0.5
    min_expected_peaks: int = 4
    energy_weight: float = 0.4
    entropy_weight: float = 0.3
    peak_weight: float = 0.3


@dataclass(frozen=True)
class QualityConfig:
    """Constants of the heuristic red-intensity quality score."""

    min_red_intensity: float = 50.0
    max_red_intensity: float = 255.0
    optimal_min: float = 150.0
    optimal_max: float = 230.0
    below_optimal_penalty: float = 0.5
    above_optimal_penalty: float = 0.7
    stability_window: int = 5
    optimal_variance: float = 500.0
    variance_weight: float = 0.3
    trend_limit: float = 50.0
    trend_penalty: float = 0.8


@dataclass(frozen=True)
class CalibrationConfig:
    """Constants of the case-based adaptive calibrator."""

    base_factor: float = 1.35
    quality_factor: float = 1.0
    max_history: int = 100
    max_similar_cases: int = 10
    similarity_threshold: float = 0.8
    min_confidence: float = 0.6
    recency_scale_ms: float = 24 * 60 * 60 * 1000.0
    temperature_scale: float = 5.0
    reference_temperature: float = 20.0
    temperature_coefficient: float = 0.005
    light_coefficient: float = 0.1
    movement_coefficient: float = 0.2
    nonlinear_coefficient: float = 0.1
    nonlinear_reference: float = 100.0
    quality_adjustment: float = 0.1
    stability_adjustment: float = 0.05
    light_adjustment: float = 0.03
    overflow_damping: float = 0.5
    similarity_weights: Dict[str, float] = field(default_factory=lambda: {
        "signal_quality": 0.3,
        "light_level": 0.2,
        "movement": 0.2,
        "coverage": 0.2,
        "temperature": 0.1,
    })
    ranges: Dict[str, PhysiologicalRange] = field(
        default_factory=lambda: dict(PHYSIOLOGICAL_RANGES)
    )


@dataclass(frozen=True)
class VitalsConfig:
    """Heuristic vital-sign model constants."""

    spo2_min_quality: float = 0.6
    spo2_base: float = 95.0
    spo2_quality_gain: float = 4.0
    bp_min_quality: float = 0.7
    systolic_base: float = 120.0
    systolic_gain: float = 10.0
    diastolic_base: float = 80.0
    diastolic_gain: float = 5.0
    arrhythmia_hrv_threshold: float = 0.2
    pnn50_threshold_ms: float = 50.0
    hrv_resample_rate: float = 4.0
    hrv_welch_segment: int = 256
    lfhf_min_intervals: int = 10
    lf_band: Tuple[float, float] = (0.04, 0.15)
    hf_band: Tuple[float, float] = (0.15, 0.4)
