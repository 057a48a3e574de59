"""
Case-based adaptive calibration of raw vital-sign measurements.

Each call looks up past calibrations made under similar signal conditions,
derives a calibration factor from them (or from a baseline model when
there are none), applies it, damps the result towards the physiological
range and records the new case.  History lives only in memory and is
bounded; the oldest case is evicted first.
"""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from typing import Callable, Deque, List, Sequence, Tuple

import numpy as np

from vitals_monitor.config import CalibrationConfig
from vitals_monitor.models import (
    CalibratedResult,
    CalibrationEntry,
    MeasurementType,
    SignalConditions,
)

logger = logging.getLogger(__name__)


def _epoch_ms() -> float:
    return time.time() * 1000.0


class AdaptiveCalibrator:
    """
    Online learner mapping ``(raw value, conditions)`` to a calibrated value.

    Not thread-safe: one instance per measurement session.

    Parameters
    ----------
    config:
        Factors, weights, ranges and history bounds.
    clock:
        Callable returning the current time in epoch milliseconds.
        Inject a fixed clock for deterministic results.
    """

    def __init__(
        self,
        config: CalibrationConfig | None = None,
        clock: Callable[[], float] = _epoch_ms,
    ) -> None:
        self.config = config or CalibrationConfig()
        self._clock = clock
        self._history: Deque[CalibrationEntry] = deque(maxlen=self.config.max_history)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def calibrate(
        self,
        raw_value: float,
        conditions: SignalConditions,
        measurement: MeasurementType | str = MeasurementType.BPM,
    ) -> CalibratedResult:
        """
        Calibrate *raw_value* measured under *conditions*.

        Never raises: malformed input is logged and yields
        :meth:`CalibratedResult.empty`.
        """
        try:
            measurement = MeasurementType(measurement)
            raw_value = float(raw_value)
            self._check_conditions(conditions)
            now = float(self._clock())

            similar = self.find_similar_cases(conditions)
            factor = self._optimal_factor(similar, conditions, now)
            value = self.validate_result(self.apply_calibration(raw_value, factor), measurement)
            confidence = self._confidence(similar, conditions)

            self._history.append(CalibrationEntry(
                raw=raw_value,
                calibrated=value,
                conditions=conditions,
                factor=factor,
                timestamp=now,
                measurement=measurement,
            ))
            return CalibratedResult(value=value, confidence=confidence, factor=factor)

        except Exception as e:
            logger.warning("Calibration failed: %s", e)
            return CalibratedResult.empty(self.config.base_factor)

    @property
    def history(self) -> Tuple[CalibrationEntry, ...]:
        """Recorded cases, oldest first."""
        return tuple(self._history)

    def reset(self) -> None:
        self._history.clear()

    def similarity(self, a: SignalConditions, b: SignalConditions) -> float:
        """Weighted closeness of two condition snapshots (1.0 = identical)."""
        w = self.config.similarity_weights
        return (
            w["signal_quality"] * (1 - abs(a.signal_quality - b.signal_quality))
            + w["light_level"] * (1 - abs(a.light_level - b.light_level))
            + w["movement"] * (1 - abs(a.movement - b.movement))
            + w["coverage"] * (1 - abs(a.coverage - b.coverage))
            + w["temperature"] * (1 - abs(a.temperature - b.temperature) / self.config.temperature_scale)
        )

    def find_similar_cases(self, conditions: SignalConditions) -> List[CalibrationEntry]:
        """Most recent cases whose similarity exceeds the threshold, newest first."""
        matches = [
            entry for entry in reversed(self._history)
            if self.similarity(entry.conditions, conditions) > self.config.similarity_threshold
        ]
        matches.sort(key=lambda e: e.timestamp, reverse=True)
        return matches[: self.config.max_similar_cases]

    def baseline_factor(self, conditions: SignalConditions) -> float:
        cfg = self.config
        factor = cfg.base_factor
        factor *= cfg.quality_factor ** conditions.signal_quality
        factor *= self._environment_factor(conditions)
        factor *= 1 + conditions.movement * cfg.movement_coefficient
        return factor

    def apply_calibration(self, raw_value: float, factor: float) -> float:
        return raw_value * factor * self._nonlinear_adjustment(raw_value)

    def validate_result(self, value: float, measurement: MeasurementType | str) -> float:
        """
        Damp *value* towards the physiological range of *measurement*.

        Values beyond a bound keep half of their excess distance.
        """
        bounds = self.config.ranges.get(MeasurementType(measurement).value)
        if bounds is None:
            return value
        damping = self.config.overflow_damping
        if value < bounds.minimum:
            return bounds.minimum + (value - bounds.minimum) * damping
        if value > bounds.maximum:
            return bounds.maximum + (value - bounds.maximum) * damping
        return value

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _optimal_factor(
        self,
        similar: Sequence[CalibrationEntry],
        conditions: SignalConditions,
        now: float,
    ) -> float:
        if not similar:
            return self.baseline_factor(conditions)

        weights = []
        for entry in similar:
            recency = math.exp(-(now - entry.timestamp) / self.config.recency_scale_ms)
            weights.append(self.similarity(entry.conditions, conditions) * recency)
        total = float(sum(weights))
        if total <= 0:
            return self.baseline_factor(conditions)

        average = sum(w * e.factor for w, e in zip(weights, similar)) / total
        return self._adjust_factor(average, conditions)

    def _adjust_factor(self, factor: float, conditions: SignalConditions) -> float:
        cfg = self.config
        factor += (conditions.signal_quality - 0.5) * cfg.quality_adjustment
        factor += (conditions.stability - 0.5) * cfg.stability_adjustment
        factor += (conditions.light_level - 0.5) * cfg.light_adjustment
        return factor

    def _environment_factor(self, conditions: SignalConditions) -> float:
        cfg = self.config
        temperature = 1 + (conditions.temperature - cfg.reference_temperature) * cfg.temperature_coefficient
        light = 1 + (0.5 - conditions.light_level) * cfg.light_coefficient
        return temperature * light

    def _nonlinear_adjustment(self, raw_value: float) -> float:
        if raw_value <= 0:
            return 1.0
        return 1 + math.log10(raw_value / self.config.nonlinear_reference) * self.config.nonlinear_coefficient

    def _confidence(self, similar: Sequence[CalibrationEntry], conditions: SignalConditions) -> float:
        quality = conditions.signal_quality
        if not similar:
            return float(min(max(quality, 0.0), self.config.min_confidence))

        best_similarity = max(self.similarity(e.conditions, conditions) for e in similar)
        if len(similar) < 2:
            stability = 1.0
        else:
            stability = math.exp(-2 * float(np.var([e.factor for e in similar])))

        confidence = 0.4 * best_similarity + 0.4 * quality + 0.2 * stability
        return float(min(1.0, max(0.0, confidence)))

    @staticmethod
    def _check_conditions(conditions: SignalConditions) -> None:
        for name in ("signal_quality", "light_level", "movement", "coverage", "temperature", "stability"):
            value = getattr(conditions, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValueError(f"condition {name!r} is not a finite number: {value!r}")
