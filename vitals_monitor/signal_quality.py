"""
Heuristic signal quality from raw red intensity.

Independent of the wavelet path and cheap enough to run every frame.  The
most recent sample decides whether a finger is plausibly present and how
well exposed it is; the last few samples add a stability check.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from vitals_monitor.config import QualityConfig

logger = logging.getLogger(__name__)


class SignalQualityAnalyzer:
    """
    Parameters
    ----------
    config:
        Intensity bounds, optimal range, variance and trend constants.
    """

    def __init__(self, config: QualityConfig | None = None) -> None:
        self.config = config or QualityConfig()

    def analyze_signal_quality(self, signal: Sequence[float] | np.ndarray) -> float:
        """
        Return a quality score in [0, 1] for the raw intensity *signal*.

        Quality is 0 for an empty signal or when the latest value lies
        outside ``[min_red_intensity, max_red_intensity]`` (no finger).
        """
        arr = np.asarray(signal, dtype=np.float64).ravel()
        if arr.size == 0:
            return 0.0

        cfg = self.config
        red_value = float(arr[-1])
        if red_value < cfg.min_red_intensity or red_value > cfg.max_red_intensity:
            logger.debug("Red intensity out of range: %.1f", red_value)
            return 0.0

        if cfg.optimal_min <= red_value <= cfg.optimal_max:
            middle = (cfg.optimal_max + cfg.optimal_min) / 2.0
            max_distance = (cfg.optimal_max - cfg.optimal_min) / 2.0
            quality = 1.0 - abs(red_value - middle) / max_distance
        else:
            if red_value < cfg.optimal_min:
                distance = cfg.optimal_min - red_value
            else:
                distance = red_value - cfg.optimal_max
            max_allowed = cfg.optimal_min - cfg.min_red_intensity
            quality = max(0.0, 1.0 - distance / max_allowed)

        if red_value < cfg.optimal_min:
            quality *= cfg.below_optimal_penalty
        elif red_value > cfg.optimal_max:
            quality *= cfg.above_optimal_penalty

        if arr.size >= cfg.stability_window:
            recent = arr[-cfg.stability_window:]
            # Variance up to the optimum is acceptable; only excess is penalised.
            variance = float(np.var(recent))
            excess = max(0.0, variance - cfg.optimal_variance)
            variance_quality = max(0.0, 1.0 - excess / cfg.optimal_variance)
            quality *= (1.0 - cfg.variance_weight) + cfg.variance_weight * variance_quality

            if abs(self.trend(recent)) > cfg.trend_limit:
                quality *= cfg.trend_penalty

        quality = float(min(1.0, max(0.0, quality)))
        logger.debug(
            "Signal quality: red=%.1f quality=%.2f status=%s",
            red_value, quality, quality_status(quality),
        )
        return quality

    @staticmethod
    def trend(samples: Sequence[float] | np.ndarray) -> float:
        """Difference between the means of the second and first halves."""
        arr = np.asarray(samples, dtype=np.float64)
        if arr.size < 2:
            return 0.0
        split = arr.size // 2
        return float(np.mean(arr[split:]) - np.mean(arr[:split]))


def quality_status(quality: float) -> str:
    """Human-readable label for a quality score."""
    if quality >= 0.9:
        return "optimal"
    if quality >= 0.7:
        return "good"
    if quality >= 0.5:
        return "moderate"
    if quality >= 0.2:
        return "weak"
    return "insufficient"
