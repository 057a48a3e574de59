"""
Finger-on-lens detector.

With the torch on and a fingertip covering the lens, the frame becomes:
  - Dominated by red (light transmitted through perfused tissue).
  - Bright enough overall (the torch is shining through the finger).
  - Red over most of its area (the lens is fully covered).

This module provides a lightweight heuristic check used to gate the
PPG pipeline, plus a debounce so brief contact does not start a reading.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from vitals_monitor.config import ProcessingSettings
from vitals_monitor.models import FingerStatus, FrameLike, as_pixel_array

logger = logging.getLogger(__name__)


class FingerDetector:
    """
    Heuristic detector: is the camera lens covered by a finger?

    Parameters
    ----------
    settings:
        Processing constants.  Uses ``min_red_value``,
        ``min_red_dominance``, ``min_valid_pixels_ratio``,
        ``min_brightness`` and ``finger_detection_delay_ms``.
    brightness_gain:
        Multiplier on ``min_brightness`` (sensitivity ``brightness``).
    """

    def __init__(
        self,
        settings: ProcessingSettings | None = None,
        brightness_gain: float = 1.0,
    ) -> None:
        self.settings = settings or ProcessingSettings()
        self.brightness_gain = brightness_gain
        self._contact_since: Optional[float] = None
        self._confirmed = False

    def assess(self, frame: FrameLike) -> FingerStatus:
        """
        Return coverage / brightness statistics for a single frame.

        Parameters
        ----------
        frame:
            RGBA frame (H × W × 4, uint8) or :class:`Frame`.
        """
        pixels = as_pixel_array(frame)
        if pixels.size == 0:
            return FingerStatus(present=False, coverage=0.0, brightness=0.0, red_mean=0.0)

        r_ch = pixels[:, :, 0].astype(np.float64)
        g_ch = pixels[:, :, 1].astype(np.float64)
        b_ch = pixels[:, :, 2].astype(np.float64)

        mean_r = float(r_ch.mean())
        brightness = (mean_r + float(g_ch.mean()) + float(b_ch.mean())) / 3.0

        s = self.settings
        valid = (r_ch >= s.min_red_value) & (r_ch >= s.min_red_dominance * g_ch)
        coverage = float(valid.mean())

        covered = coverage >= s.min_valid_pixels_ratio
        bright_enough = brightness >= s.min_brightness * self.brightness_gain

        return FingerStatus(
            present=covered and bright_enough,
            coverage=coverage,
            brightness=brightness,
            red_mean=mean_r,
        )

    def is_finger(self, frame: FrameLike) -> bool:
        """Return *True* if *frame* looks like a finger covering the lens."""
        return self.assess(frame).present

    def update(self, frame: FrameLike, timestamp_ms: float) -> FingerStatus:
        """
        Assess *frame* and debounce the result.

        Contact is only reported once it has lasted
        ``finger_detection_delay_ms``; any frame without contact resets
        the timer.
        """
        status = self.assess(frame)
        if not status.present:
            if self._confirmed:
                logger.info("Finger removed.")
            self._contact_since = None
            self._confirmed = False
            return status

        if self._contact_since is None:
            self._contact_since = timestamp_ms
        held = timestamp_ms - self._contact_since
        if not self._confirmed and held >= self.settings.finger_detection_delay_ms:
            self._confirmed = True
            logger.info("Finger detected (coverage=%.2f).", status.coverage)

        return FingerStatus(
            present=self._confirmed,
            coverage=status.coverage,
            brightness=status.brightness,
            red_mean=status.red_mean,
        )

    def reset(self) -> None:
        self._contact_since = None
        self._confirmed = False
