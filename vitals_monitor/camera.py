"""
Camera adapter producing RGBA frames for the PPG pipeline.

Wraps picamera2 on a Raspberry Pi and falls back to OpenCV VideoCapture
(any webcam) elsewhere.  Every capture is converted to a :class:`Frame` in
RGBA byte layout, the input format of :class:`PPGProcessor`.
"""

from __future__ import annotations

import logging
from typing import Generator, Tuple

import cv2
import numpy as np

from vitals_monitor.models import Frame

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Try importing picamera2 (only available on Raspberry Pi OS)
# ---------------------------------------------------------------------------
try:
    from picamera2 import Picamera2
    _PICAMERA2_AVAILABLE = True
except ImportError:
    _PICAMERA2_AVAILABLE = False
    logger.debug("picamera2 not found – using OpenCV VideoCapture.")


def frame_from_bgr(bgr: np.ndarray) -> Frame:
    """Convert an OpenCV BGR image (H × W × 3, uint8) to an RGBA :class:`Frame`."""
    rgba = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)
    h, w = rgba.shape[:2]
    return Frame(width=w, height=h, data=rgba)


def frame_from_rgb(rgb: np.ndarray) -> Frame:
    """Convert an RGB / XRGB capture (H × W × 3|4, uint8) to an RGBA :class:`Frame`."""
    if rgb.ndim == 3 and rgb.shape[2] == 4:
        rgb = rgb[:, :, :3]
    rgba = cv2.cvtColor(np.ascontiguousarray(rgb), cv2.COLOR_RGB2RGBA)
    h, w = rgba.shape[:2]
    return Frame(width=w, height=h, data=rgba)


class FingertipCamera:
    """
    Frame source for fingertip PPG.

    Parameters
    ----------
    resolution:
        (width, height) of captured frames.
    fps:
        Target frame rate.  Actual rate may differ slightly.
    camera_index:
        OpenCV camera index when picamera2 is unavailable.
    use_picamera2:
        Force the backend; ``None`` picks picamera2 when importable.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (640, 480),
        fps: int = 30,
        camera_index: int = 0,
        use_picamera2: bool | None = None,
    ) -> None:
        self.resolution = resolution
        self.fps = fps
        self.camera_index = camera_index

        self._cam: "Picamera2 | cv2.VideoCapture | None" = None
        self._use_picamera2 = _PICAMERA2_AVAILABLE if use_picamera2 is None else use_picamera2

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Initialise and start the camera."""
        if self._use_picamera2:
            self._open_picamera2()
        else:
            self._open_opencv()
        logger.info(
            "Camera opened – backend=%s resolution=%s fps=%d",
            "picamera2" if self._use_picamera2 else "opencv",
            self.resolution,
            self.fps,
        )

    def close(self) -> None:
        """Stop and release the camera."""
        if self._cam is None:
            return
        if self._use_picamera2:
            self._cam.stop()
            self._cam.close()
        else:
            self._cam.release()
        self._cam = None
        logger.info("Camera closed.")

    def __enter__(self) -> "FingertipCamera":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def read_frame(self) -> Frame | None:
        """Capture a single RGBA frame, or *None* on failure."""
        if self._cam is None:
            raise RuntimeError("Camera is not open.  Call open() first.")
        if self._use_picamera2:
            raw = self._cam.capture_array("main")
            if raw is None:
                logger.warning("capture_array returned None.")
                return None
            return frame_from_rgb(raw)

        ok, bgr = self._cam.read()
        if not ok:
            logger.warning("VideoCapture.read() returned False.")
            return None
        return frame_from_bgr(bgr)

    def frames(self) -> Generator[Frame, None, None]:
        """
        Yield frames until the camera is closed or ten reads in a row fail.

        Usage::

            with FingertipCamera() as cam:
                for frame in cam.frames():
                    processor.process_frame(frame)
        """
        null_streak = 0
        while self._cam is not None:
            frame = self.read_frame()
            if frame is None:
                null_streak += 1
                if null_streak >= 10:
                    logger.error("Camera returned 10 consecutive None frames – aborting.")
                    break
                continue
            null_streak = 0
            yield frame

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _open_picamera2(self) -> None:
        cam = Picamera2()
        w, h = self.resolution
        config = cam.create_video_configuration(
            main={"size": (w, h), "format": "RGB888"},
            buffer_count=4,
        )
        cam.configure(config)
        frame_duration = int(1_000_000 / self.fps)   # microseconds
        try:
            cam.set_controls({"FrameDurationLimits": (frame_duration, frame_duration)})
        except Exception as exc:                         # noqa: BLE001
            logger.warning("Could not set FrameDurationLimits: %s", exc)
        cam.start()
        # Let auto-exposure settle before frames are used.
        for _ in range(8):
            cam.capture_array("main")
        self._cam = cam

    def _open_opencv(self) -> None:
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            raise RuntimeError(
                f"Cannot open video capture device index={self.camera_index}"
            )
        w, h = self.resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        self._cam = cap
