"""
Fixed-capacity circular sample storage.

Capacity must be a power of two so a full window feeds the dyadic wavelet
decomposition without truncation.  The oldest sample is overwritten once
the buffer is full.
"""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np

from vitals_monitor.models import Sample


class RingSampleBuffer:
    """
    Circular buffer of scalar samples with per-sample timestamps.

    Parameters
    ----------
    capacity:
        Number of samples retained.  Must be a positive power of two.
    """

    def __init__(self, capacity: int = 256) -> None:
        if capacity <= 0 or capacity & (capacity - 1):
            raise ValueError(f"capacity must be a power of two, got {capacity}")
        self.capacity = capacity
        self._data = np.zeros(capacity, dtype=np.float64)
        self._times = np.zeros(capacity, dtype=np.float64)
        self._write_idx = 0
        self._count = 0

    def __len__(self) -> int:
        return self._count

    @property
    def is_full(self) -> bool:
        return self._count == self.capacity

    @property
    def fill_ratio(self) -> float:
        """How full the buffer is (0 – 1)."""
        return self._count / self.capacity

    def append(self, value: float, timestamp: float = 0.0) -> None:
        self._data[self._write_idx] = value
        self._times[self._write_idx] = timestamp
        self._write_idx = (self._write_idx + 1) & (self.capacity - 1)
        if self._count < self.capacity:
            self._count += 1

    def push(self, sample: Sample) -> None:
        self.append(sample.value, sample.timestamp)

    def extend(self, values: Iterable[float], timestamp: float = 0.0) -> None:
        for value in values:
            self.append(float(value), timestamp)

    def values(self) -> np.ndarray:
        """Return a copy of the stored samples ordered oldest → newest."""
        return self._ordered(self._data)

    def timestamps(self) -> np.ndarray:
        return self._ordered(self._times)

    def latest(self, n: int) -> np.ndarray:
        """Return up to *n* of the most recent samples, oldest first."""
        if n <= 0:
            return np.array([], dtype=np.float64)
        return self.values()[-n:]

    def last(self) -> Optional[float]:
        if self._count == 0:
            return None
        return float(self._data[(self._write_idx - 1) & (self.capacity - 1)])

    def clear(self) -> None:
        self._data.fill(0.0)
        self._times.fill(0.0)
        self._write_idx = 0
        self._count = 0

    def _ordered(self, arr: np.ndarray) -> np.ndarray:
        if self._count < self.capacity:
            return arr[: self._count].copy()
        return np.concatenate((arr[self._write_idx:], arr[: self._write_idx]))
