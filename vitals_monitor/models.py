"""
Data types flowing through the PPG pipeline.

Degraded outcomes are explicit values rather than exceptions:
:meth:`WaveletAnalysis.empty`, :meth:`CalibratedResult.empty` and
:meth:`ProcessedPPGSignal.no_signal` all report ``is_empty == True``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Union

import numpy as np


# ---------------------------------------------------------------------------
# Acquisition
# ---------------------------------------------------------------------------

@dataclass
class Frame:
    """
    One camera capture in RGBA byte layout (4 bytes per pixel).

    ``data`` may be raw ``bytes`` or an array already shaped
    ``(height, width, 4)``.
    """

    width: int
    height: int
    data: Union[bytes, bytearray, memoryview, np.ndarray, None]


FrameLike = Union[Frame, np.ndarray, None]


def as_pixel_array(frame: FrameLike) -> np.ndarray:
    """
    Return *frame* as an ``(H, W, 4)`` uint8 array.

    An empty ``(0, 0, 4)`` array is returned for ``None`` or empty frames.
    """
    empty = np.zeros((0, 0, 4), dtype=np.uint8)
    if frame is None:
        return empty
    if isinstance(frame, np.ndarray):
        if frame.size == 0:
            return empty
        if frame.ndim != 3 or frame.shape[2] < 3:
            raise ValueError(f"Expected an H × W × 4 pixel array, got shape {frame.shape}")
        return frame
    if frame.data is None or len(frame.data) == 0:
        return empty
    if isinstance(frame.data, np.ndarray):
        return frame.data.reshape(frame.height, frame.width, -1)
    buf = np.frombuffer(frame.data, dtype=np.uint8)
    expected = frame.width * frame.height * 4
    if buf.size < expected:
        raise ValueError(
            f"Frame data holds {buf.size} bytes, expected {expected} "
            f"for {frame.width}x{frame.height} RGBA"
        )
    return buf[:expected].reshape(frame.height, frame.width, 4)


@dataclass(frozen=True)
class FingerStatus:
    present: bool
    coverage: float
    brightness: float
    red_mean: float


@dataclass(frozen=True)
class Sample:
    value: float
    timestamp: float


# ---------------------------------------------------------------------------
# Wavelet analysis
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Peak:
    """Local extremum in a sequence (``level`` is -1 for time-domain peaks)."""

    position: int
    magnitude: float
    width: int = 1
    level: int = -1


@dataclass
class WaveletDecomposition:
    """Detail bands (finest first) followed by the final approximation."""

    coefficients: List[np.ndarray]
    levels: int

    @property
    def details(self) -> List[np.ndarray]:
        return self.coefficients[: self.levels]

    @property
    def approximation(self) -> np.ndarray:
        return self.coefficients[-1]


@dataclass(frozen=True)
class SignalCharacteristics:
    energy: float = 0.0
    entropy: float = 0.0
    dominant_frequency: float = 0.0
    signal_to_noise: float = 0.0
    pulse_energy_ratio: float = 0.0


@dataclass
class WaveletAnalysis:
    quality: float
    peaks: List[Peak]
    noise: float
    frequency: float
    characteristics: SignalCharacteristics = field(default_factory=SignalCharacteristics)
    band_energies: List[float] = field(default_factory=list)
    is_empty: bool = False

    @classmethod
    def empty(cls) -> "WaveletAnalysis":
        return cls(quality=0.0, peaks=[], noise=0.0, frequency=0.0, is_empty=True)


# ---------------------------------------------------------------------------
# Calibration
# ---------------------------------------------------------------------------

class MeasurementType(str, enum.Enum):
    BPM = "bpm"
    SPO2 = "spo2"
    SYSTOLIC = "systolic"
    DIASTOLIC = "diastolic"


@dataclass(frozen=True)
class SignalConditions:
    """
    Context snapshot used to match calibration cases.

    All fields are roughly in [0, 1] except ``temperature`` (°C).
    """

    signal_quality: float
    light_level: float = 0.5
    movement: float = 0.0
    coverage: float = 1.0
    temperature: float = 20.0
    stability: float = 0.5


@dataclass(frozen=True)
class CalibrationEntry:
    raw: float
    calibrated: float
    conditions: SignalConditions
    factor: float
    timestamp: float
    measurement: MeasurementType = MeasurementType.BPM


@dataclass(frozen=True)
class CalibratedResult:
    value: float
    confidence: float
    factor: float
    is_empty: bool = False

    @classmethod
    def empty(cls, base_factor: float) -> "CalibratedResult":
        return cls(value=0.0, confidence=0.0, factor=base_factor, is_empty=True)


# ---------------------------------------------------------------------------
# Vitals
# ---------------------------------------------------------------------------

@dataclass
class SignalFeatures:
    peaks: List[int] = field(default_factory=list)
    valleys: List[int] = field(default_factory=list)
    frequency: float = 0.0
    amplitude: float = 0.0
    perfusion_index: float = 0.0


@dataclass(frozen=True)
class HRVMetrics:
    sdnn: float = 0.0
    rmssd: float = 0.0
    pnn50: float = 0.0
    lfhf: float = 0.0


@dataclass(frozen=True)
class VitalsEstimate:
    bpm: float = 0.0
    spo2: float = 0.0
    systolic: float = 0.0
    diastolic: float = 0.0
    hrv: float = 0.0
    has_arrhythmia: bool = False
    arrhythmia_type: str = "Normal"
    hrv_metrics: HRVMetrics = field(default_factory=HRVMetrics)


@dataclass(frozen=True)
class VitalReading:
    timestamp: float
    value: float


@dataclass
class ProcessedPPGSignal:
    """Per-frame output record handed to display / alerting collaborators."""

    signal: np.ndarray
    quality: float
    features: SignalFeatures
    bpm: int
    spo2: int
    systolic: int
    diastolic: int
    has_arrhythmia: bool
    arrhythmia_type: str
    confidence: float
    timestamp: float
    readings: List[VitalReading] = field(default_factory=list)
    hrv_metrics: Optional[HRVMetrics] = None
    finger_detected: bool = False
    is_empty: bool = False

    @property
    def signal_quality(self) -> float:
        return self.quality

    @classmethod
    def no_signal(cls, timestamp: float, finger_detected: bool = False) -> "ProcessedPPGSignal":
        return cls(
            signal=np.array([]),
            quality=0.0,
            features=SignalFeatures(),
            bpm=0,
            spo2=0,
            systolic=0,
            diastolic=0,
            has_arrhythmia=False,
            arrhythmia_type="Normal",
            confidence=0.0,
            timestamp=timestamp,
            finger_detected=finger_detected,
            is_empty=True,
        )
