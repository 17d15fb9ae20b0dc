"""OpenCV window showing the camera feed and collecting clicks."""

import logging
import time
from collections import deque
from typing import Callable, Iterator

import cv2
import numpy as np

from .events import Event, MouseClick, Shutdown

logger = logging.getLogger("look_at.viewer")

WAIT_KEY_MS = 15
QUIT_KEYS = (ord("q"), 27)  # q, Esc


def parse_source(source: str | None) -> int | str | None:
    """'0' -> device index 0, '' / 'none' -> no source, anything else is a path/URL."""
    if source is None or source.strip().lower() in ("", "none"):
        return None
    if source.isdigit():
        return int(source)
    return source


class CameraViewer:
    """Shows frames from a capture source and turns mouse events into MouseClick.

    With no source a black frame is shown, which is enough to click on in mock runs.
    """

    def __init__(
        self,
        window_name: str,
        source: str | None = "0",
        width: int = 640,
        height: int = 480,
    ):
        self.window_name = window_name
        self.source = parse_source(source)
        self.width = width
        self.height = height
        self._cap: cv2.VideoCapture | None = None
        self._pending: deque[MouseClick] = deque()
        self._opened = False

    def _on_mouse(self, event, u, v, _flags, _param):
        self._pending.append(MouseClick(event=event, u=u, v=v, stamp=time.time()))

    def open(self) -> None:
        if self._opened:
            return
        if self.source is not None:
            logger.info(f"Opening image source {self.source!r} ...")
            self._cap = cv2.VideoCapture(self.source)
            if not self._cap.isOpened():
                self._cap.release()
                self._cap = None
                raise RuntimeError(f"Could not open image source {self.source!r}")
        cv2.namedWindow(self.window_name, cv2.WINDOW_AUTOSIZE)
        cv2.setMouseCallback(self.window_name, self._on_mouse)
        self._opened = True

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        if self._opened:
            cv2.destroyWindow(self.window_name)
            self._opened = False

    def _next_frame(self) -> np.ndarray | None:
        if self._cap is None:
            return np.zeros((self.height, self.width, 3), dtype=np.uint8)
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        return frame

    def events(self, is_ok: Callable[[], bool] = lambda: True) -> Iterator[Event]:
        """Pump the window and yield clicks; ends with Shutdown.

        A file or stream source that runs dry ends the loop; a device keeps
        being polled.
        """
        self.open()
        read_failed = False
        while is_ok():
            frame = self._next_frame()
            if frame is None:
                if not isinstance(self.source, int):
                    logger.info(f"Image source {self.source!r} ended")
                    yield Shutdown("(end of stream)")
                    return
                if not read_failed:
                    logger.warning(f"Failed to read frame from device {self.source}")
                read_failed = True
                time.sleep(0.05)
            else:
                read_failed = False
                cv2.imshow(self.window_name, frame)
            key = cv2.waitKey(WAIT_KEY_MS) & 0xFF
            while self._pending:
                yield self._pending.popleft()
            if key in QUIT_KEYS:
                yield Shutdown("(quit key)")
                return
        yield Shutdown("(signal)")

    def __enter__(self) -> "CameraViewer":
        self.open()
        return self

    def __exit__(self, *args) -> None:
        self.close()
