#!/usr/bin/env python3
"""
Vitals Monitor – entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --resolution WxH     Camera resolution (default: 640x480)
    --fps INT            Target frame rate  (default: 30)
    --camera-index INT   OpenCV camera index (fallback, default: 0)
    --duration FLOAT     Stop after this many seconds (default: measurement duration)
    --log-interval INT   Frames between vitals log lines (default: fps)
    --no-calibration     Report raw estimates without adaptive calibration
    --verbose            Per-frame debug logging

Press Ctrl-C to stop.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time

from vitals_monitor.camera import FingertipCamera
from vitals_monitor.config import ProcessingSettings
from vitals_monitor.processor import PPGProcessor
from vitals_monitor.signal_quality import quality_status

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("vitals_monitor")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fingertip PPG vitals monitor (heart rate, SpO2, BP estimate)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--resolution", default="640x480",
                        help="Camera resolution, e.g. 640x480")
    parser.add_argument("--fps", type=int, default=30,
                        help="Target capture frame rate")
    parser.add_argument("--camera-index", type=int, default=0,
                        help="OpenCV VideoCapture index (fallback)")
    parser.add_argument("--duration", type=float, default=None,
                        help="Stop after this many seconds (default: measurement duration)")
    parser.add_argument("--log-interval", type=int, default=None,
                        help="Frames between vitals log lines (default: one second)")
    parser.add_argument("--no-calibration", action="store_true",
                        help="Disable adaptive calibration of the estimates")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable per-frame debug logging")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace | None = None) -> int:
    if args is None:
        args = parse_args()
    if args.verbose:
        logging.getLogger("vitals_monitor").setLevel(logging.DEBUG)

    try:
        res_w, res_h = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 640x480.")
        return 1

    settings = ProcessingSettings(
        sample_rate=float(args.fps),
        apply_calibration=not args.no_calibration,
    )
    duration = args.duration if args.duration is not None else settings.measurement_duration_s
    log_interval = args.log_interval or args.fps

    camera = FingertipCamera(resolution=(res_w, res_h), fps=args.fps, camera_index=args.camera_index)
    processor = PPGProcessor(settings=settings)

    logger.info("Place a fingertip over the lens (torch on).  Ctrl-C to stop.")
    started = time.monotonic()
    frame_idx = 0

    try:
        with camera:
            for frame in camera.frames():
                result = processor.process_frame(frame)

                if frame_idx % log_interval == 0:
                    if result.is_empty:
                        logger.info("Waiting for finger…")
                    elif result.bpm > 0:
                        logger.info(
                            "BPM=%d  SpO2=%d%%  BP=%d/%d  rhythm=%s  quality=%.2f (%s)  conf=%.2f",
                            result.bpm, result.spo2, result.systolic, result.diastolic,
                            result.arrhythmia_type, result.quality,
                            quality_status(result.quality), result.confidence,
                        )
                    else:
                        logger.info(
                            "Measuring…  quality=%.2f (%s)  progress=%.0f%%",
                            result.quality, quality_status(result.quality),
                            processor.measurement_progress * 100,
                        )

                frame_idx += 1
                if time.monotonic() - started >= duration:
                    logger.info("Measurement duration reached.")
                    break

    except KeyboardInterrupt:
        logger.info("Interrupted.")
    except RuntimeError as exc:
        logger.error("%s", exc)
        return 1

    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(run(parse_args()))
