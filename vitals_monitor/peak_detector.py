"""
Statistical peak / valley finder for the smoothed PPG waveform.

A sample is a peak when it rises above ``μ + kσ`` of the window and is
strictly greater than both neighbours; valleys mirror the rule below
``μ − kσ``.  Fewer than two peaks means "no rhythm detected" and gives a
frequency of exactly zero.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np


class PeakValleyDetector:
    """
    Parameters
    ----------
    sample_rate:
        Effective sampling rate of the waveform in samples per second.
    threshold_factor:
        ``k`` in the ``μ ± kσ`` thresholds (default 0.5).
    min_distance:
        Minimum spacing in samples between reported peaks.  When two
        peaks are closer, the higher one is kept.  1 disables suppression.
    """

    def __init__(
        self,
        sample_rate: float = 30.0,
        threshold_factor: float = 0.5,
        min_distance: int = 1,
    ) -> None:
        self.sample_rate = sample_rate
        self.threshold_factor = threshold_factor
        self.min_distance = max(1, int(min_distance))

    def thresholds(self, data: np.ndarray) -> Tuple[float, float]:
        """Return ``(upper, lower)`` thresholds for *data*."""
        mean = float(np.mean(data))
        std = float(np.std(data))
        return mean + self.threshold_factor * std, mean - self.threshold_factor * std

    def find_peaks(self, data: Sequence[float] | np.ndarray) -> List[int]:
        arr = np.asarray(data, dtype=np.float64)
        if arr.size < 3:
            return []
        upper, _ = self.thresholds(arr)
        mid = arr[1:-1]
        mask = (mid > upper) & (mid > arr[:-2]) & (mid > arr[2:])
        peaks = (np.nonzero(mask)[0] + 1).tolist()
        return self._suppress(arr, peaks, prefer_high=True)

    def find_valleys(self, data: Sequence[float] | np.ndarray) -> List[int]:
        arr = np.asarray(data, dtype=np.float64)
        if arr.size < 3:
            return []
        _, lower = self.thresholds(arr)
        mid = arr[1:-1]
        mask = (mid < lower) & (mid < arr[:-2]) & (mid < arr[2:])
        valleys = (np.nonzero(mask)[0] + 1).tolist()
        return self._suppress(arr, valleys, prefer_high=False)

    def frequency(self, peaks: Sequence[int]) -> float:
        """Pulse frequency in Hz from peak positions (0.0 with < 2 peaks)."""
        if len(peaks) < 2:
            return 0.0
        average_distance = float(np.mean(np.diff(peaks)))
        if average_distance <= 0:
            return 0.0
        return self.sample_rate / average_distance

    def bpm(self, peaks: Sequence[int]) -> float:
        return self.frequency(peaks) * 60.0

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _suppress(self, arr: np.ndarray, idx: List[int], prefer_high: bool) -> List[int]:
        if self.min_distance <= 1 or len(idx) < 2:
            return idx
        kept: List[int] = []
        for i in idx:
            if kept and i - kept[-1] < self.min_distance:
                better = arr[i] > arr[kept[-1]] if prefer_high else arr[i] < arr[kept[-1]]
                if better:
                    kept[-1] = i
                continue
            kept.append(i)
        return kept
