"""
Moving-average denoise stage.

:func:`moving_average` smooths a complete sequence with a symmetric window
that shrinks at both edges (no padding).  :class:`MovingAverageFilter`
produces the same values incrementally from a sample stream, delayed by
``radius`` samples so every output has its full right-hand context.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Optional, Sequence

import numpy as np


def moving_average(data: Sequence[float] | np.ndarray, radius: int = 5) -> np.ndarray:
    """
    Symmetric moving average of *data* with window ``2 * radius + 1``.

    Samples near the edges average over the part of the window that exists.
    """
    if radius < 0:
        raise ValueError(f"radius must be non-negative, got {radius}")
    arr = np.asarray(data, dtype=np.float64)
    n = arr.size
    if n == 0:
        return np.array([], dtype=np.float64)
    csum = np.concatenate(([0.0], np.cumsum(arr)))
    idx = np.arange(n)
    lo = np.maximum(0, idx - radius)
    hi = np.minimum(n, idx + radius + 1)
    return (csum[hi] - csum[lo]) / (hi - lo)


class MovingAverageFilter:
    """
    Streaming form of :func:`moving_average`.

    ``push`` returns ``None`` until ``radius + 1`` samples have arrived;
    afterwards each call returns the smoothed value of the sample
    ``radius`` positions back.
    """

    def __init__(self, radius: int = 5) -> None:
        if radius < 1:
            raise ValueError(f"radius must be at least 1, got {radius}")
        self.radius = radius
        self._window: Deque[float] = deque(maxlen=2 * radius + 1)
        self._seen = 0

    def push(self, value: float) -> Optional[float]:
        self._window.append(float(value))
        self._seen += 1
        if self._seen <= self.radius:
            return None
        return float(np.mean(self._window))

    def reset(self) -> None:
        self._window.clear()
        self._seen = 0


def radius_for(noise_reduction: float, base_radius: int = 5) -> int:
    """Smoothing radius scaled by the ``noise_reduction`` sensitivity."""
    return max(1, int(round(base_radius * noise_reduction)))
