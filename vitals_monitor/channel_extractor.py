"""
Red-channel extraction.

Haemoglobin absorbs strongly in green but a fingertip lit by the camera
torch saturates green and blue; the transmitted red light is the usable
blood-volume pulse proxy.  Each frame is reduced to its mean red intensity.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from vitals_monitor.models import FrameLike, Sample, as_pixel_array

logger = logging.getLogger(__name__)


class ChannelExtractor:
    """
    Reduce RGBA frames to red-channel samples.

    Parameters
    ----------
    red_gain:
        Multiplier applied to extracted red values (sensitivity
        ``red_intensity``).  Default 1.0.
    """

    RED = 0

    def __init__(self, red_gain: float = 1.0) -> None:
        self.red_gain = red_gain

    def red_channel(self, frame: FrameLike) -> np.ndarray:
        """
        Return the red value of every pixel as a flat float array.

        Empty or ``None`` frames yield an empty array; callers treat that
        as "no signal this frame".
        """
        pixels = as_pixel_array(frame)
        if pixels.size == 0:
            return np.array([], dtype=np.float64)
        return pixels[:, :, self.RED].astype(np.float64).ravel() * self.red_gain

    def red_mean(self, frame: FrameLike) -> Optional[float]:
        """Mean red intensity of *frame*, or ``None`` when it carries no pixels."""
        pixels = as_pixel_array(frame)
        if pixels.size == 0:
            return None
        return float(np.mean(pixels[:, :, self.RED])) * self.red_gain

    def extract(self, frame: FrameLike, timestamp: float) -> Optional[Sample]:
        """Red-mean sample of *frame* stamped with *timestamp*, or ``None``."""
        value = self.red_mean(frame)
        if value is None:
            return None
        return Sample(value=value, timestamp=timestamp)
