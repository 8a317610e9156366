#!/usr/bin/env python3
"""
rPPG heartbeat – command-line runner.

Usage
-----
    python main.py --face-cascade haarcascade_frontalface_alt.xml [OPTIONS]

Options
-------
    --source SRC             Camera index or video file (default: 0)
    --resolution WxH         Frame size (default: 640x480)
    --method NAME            green | xminay (default: green)
    --tracking NAME          cascade | flow (default: cascade)
    --face-cascade PATH      Face cascade XML (required)
    --eye-cascade PATH       Eye cascade XML (optional, cascade tracking only)
    --sampling-interval SEC  Seconds between reported results (default: 1)
    --rescan-interval SEC    Seconds between face re-detections (default: 1)
    --log-prefix PATH        Write CSV logs with this path prefix
    --noise-validation       Skip estimates while the signal looks noisy
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rppg_heartbeat.camera import VideoSource
from rppg_heartbeat.config import SessionConfig
from rppg_heartbeat.session import RPPGSession
from rppg_heartbeat.sinks import LoggingSink

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("rppg_heartbeat")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Heart rate from face video (rPPG)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--source", default="0",
                        help="Camera index or path to a video file")
    parser.add_argument("--resolution", default="640x480",
                        help="Frame size, e.g. 640x480")
    parser.add_argument("--method", choices=("green", "xminay"), default="green",
                        help="Pulse signal extraction method")
    parser.add_argument("--tracking", choices=("cascade", "flow"), default="cascade",
                        help="Face region tracking strategy")
    parser.add_argument("--face-cascade", type=Path, required=True,
                        help="Haar cascade file for face detection")
    parser.add_argument("--eye-cascade", type=Path, default=None,
                        help="Haar cascade file for eye detection")
    parser.add_argument("--sampling-interval", type=float, default=1.0,
                        help="Seconds between aggregated BPM results")
    parser.add_argument("--rescan-interval", type=float, default=1.0,
                        help="Seconds between forced face re-detections")
    parser.add_argument("--log-prefix", default=None,
                        help="Write CSV logs using this path prefix")
    parser.add_argument("--noise-validation", action="store_true",
                        help="Skip estimates while motion noise is detected")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, width: int, height: int) -> SessionConfig:
    eye = str(args.eye_cascade) if args.eye_cascade else None
    return SessionConfig(
        width=width,
        height=height,
        time_base=0.001,
        sampling_interval=args.sampling_interval,
        rescan_interval=args.rescan_interval,
        face_classifier=str(args.face_cascade),
        left_eye_classifier=eye,
        right_eye_classifier=eye,
        method=args.method,
        tracking=args.tracking,
        noise_validation=args.noise_validation,
        log=args.log_prefix is not None,
        log_prefix=args.log_prefix or "rppg",
    )


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    try:
        width, height = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 640x480.")
        return 1

    try:
        config = build_config(args, width, height)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    source = VideoSource(args.source, resolution=(width, height))
    session = RPPGSession(config, sink=LoggingSink())

    logger.info("Starting rPPG session.  Press Ctrl+C to stop.")
    try:
        with source, session:
            for frame, gray, timestamp in source.frames():
                session.process_frame(frame, gray, timestamp)
    except RuntimeError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    return 0


def main() -> int:
    return run(parse_args())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
