#!/usr/bin/env python3
"""Entry point: click on the camera image to make the robot look there."""

import argparse
import logging
import signal
import threading
from pathlib import Path

from .clock import wait_for_valid_time
from .config import Settings
from .dispatcher import ActuatorGoalDispatcher
from .errors import TimeNotValidError
from .events import LookAtPipeline
from .intrinsics import (
    CalibrationFeed,
    CameraInfoFile,
    IntrinsicsStore,
    StaticCalibration,
    wait_for_intrinsics,
)
from .transport import ControllerTransport, MockTransport, WebSocketTransport
from .viewer import CameraViewer

logger = logging.getLogger("look_at")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Click on image pixels to make the robot head look in that direction"
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use a mock head controller and fixed intrinsics (no robot needed)",
    )
    parser.add_argument(
        "--controller-uri",
        type=str,
        default=None,
        help="WebSocket URI of the head controller (default: LOOK_AT_CONTROLLER_URI)",
    )
    parser.add_argument(
        "--calibration",
        type=str,
        default=None,
        help="Path to CameraInfo JSON with the 'K' matrix",
    )
    parser.add_argument(
        "--source",
        type=str,
        default=None,
        help="Image source: device index, file or stream URL, 'none' for a blank frame",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    """Command line flags override environment settings."""
    overrides = {}
    if args.mock:
        overrides["mock_hardware"] = True
    if args.debug:
        overrides["debug"] = True
    if args.controller_uri is not None:
        overrides["controller_uri"] = args.controller_uri
    if args.calibration is not None:
        overrides["calibration_path"] = args.calibration
    if args.source is not None:
        overrides["image_source"] = args.source
    return settings.model_copy(update=overrides)


def build_calibration_feed(settings: Settings) -> CalibrationFeed:
    if settings.mock_hardware:
        return StaticCalibration(settings.mock_camera_matrix)
    return CameraInfoFile(Path(settings.calibration_path))


def build_transport(settings: Settings) -> ControllerTransport:
    if settings.mock_hardware:
        return MockTransport()
    return WebSocketTransport(
        settings.controller_uri,
        endpoint=settings.controller_endpoint,
        send_timeout=settings.send_timeout_s,
    )


def start(settings: Settings, stop: threading.Event) -> tuple[int, LookAtPipeline | None]:
    """Run the startup preconditions.

    Returns:
        (exit_code, pipeline); pipeline is None unless every precondition held
    """
    def is_ok() -> bool:
        return not stop.is_set()

    try:
        wait_for_valid_time(timeout=settings.time_timeout_s)
    except TimeNotValidError as e:
        logger.critical(str(e))
        return 1, None

    store = IntrinsicsStore()
    logger.info("Waiting for camera intrinsics ... ")
    if not wait_for_intrinsics(
        store,
        build_calibration_feed(settings),
        is_ok=is_ok,
        poll_interval=settings.calibration_poll_s,
    ):
        logger.critical("Interrupted before camera intrinsics were received")
        return 1, None

    dispatcher = ActuatorGoalDispatcher(
        build_transport(settings),
        handshake_timeout=settings.handshake_timeout_s,
        max_attempts=settings.handshake_attempts,
    )
    result = dispatcher.connect(is_ok=is_ok)
    if not result.ok:
        logger.critical(str(result.error))
        dispatcher.close()
        return 1, None

    return 0, LookAtPipeline(store, dispatcher, settings.camera_frame)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = apply_args(Settings(), args)

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger.info("Starting look-at application ...")

    stop = threading.Event()

    def _request_stop(signum, _frame):
        logger.info(f"Received signal {signum}, stopping")
        stop.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    code, pipeline = start(settings, stop)
    if pipeline is None:
        return code

    viewer = CameraViewer(
        settings.window_name,
        source=settings.image_source,
        width=settings.image_width,
        height=settings.image_height,
    )
    try:
        with viewer:
            logger.info("Click on the image to look there (press 'q' to quit)")
            submitted = pipeline.run(viewer.events(is_ok=lambda: not stop.is_set()))
        logger.info(f"Submitted {submitted} goal(s)")
    except RuntimeError as e:
        logger.critical(str(e))
        return 1
    finally:
        pipeline.dispatcher.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
