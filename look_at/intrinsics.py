"""Camera intrinsics: one-shot store plus the calibration feeds that fill it."""

import json
import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from .errors import InvalidIntrinsicsError, NotReadyError
from .models import CameraIntrinsics

logger = logging.getLogger("look_at.intrinsics")

DEFAULT_POLL_INTERVAL = 0.2


def _matrix_from_record(record: dict) -> list[float]:
    """Pull the row-major 3x3 matrix out of a CameraInfo-like record."""
    k = record.get("K", record.get("k"))
    if k is None:
        raise InvalidIntrinsicsError("Calibration record has no 'K' matrix")
    try:
        values = [float(v) for v in k]
    except (TypeError, ValueError) as e:
        raise InvalidIntrinsicsError(f"Calibration matrix is not numeric: {e}") from e
    if len(values) != 9:
        raise InvalidIntrinsicsError(
            f"Calibration matrix must have 9 values, got {len(values)}"
        )
    if not all(math.isfinite(v) for v in values):
        raise InvalidIntrinsicsError("Calibration matrix contains non-finite values")
    return values


class IntrinsicsStore:
    """Holds the camera intrinsics once the calibration feed delivers them.

    The snapshot is swapped under a lock so a reader on another thread never
    sees a half-written value.
    """

    def __init__(self):
        self._intrinsics: CameraIntrinsics | None = None
        self._lock = threading.Lock()

    def update(self, record: dict) -> CameraIntrinsics:
        """Store intrinsics from a calibration record (last write wins).

        Args:
            record: Mapping with a 9-value row-major matrix under "K" (or "k")

        Returns:
            The stored snapshot

        Raises:
            InvalidIntrinsicsError: If the record has no usable matrix
        """
        intrinsics = CameraIntrinsics.from_matrix(_matrix_from_record(record))
        with self._lock:
            self._intrinsics = intrinsics
        logger.info(
            f"Camera intrinsics: fx={intrinsics.fx:.1f}, fy={intrinsics.fy:.1f}, "
            f"cx={intrinsics.cx:.1f}, cy={intrinsics.cy:.1f}"
        )
        return intrinsics

    def is_ready(self) -> bool:
        with self._lock:
            return self._intrinsics is not None

    def get(self) -> CameraIntrinsics:
        with self._lock:
            intrinsics = self._intrinsics
        if intrinsics is None:
            raise NotReadyError("Camera intrinsics have not been received yet")
        return intrinsics


class CalibrationFeed(ABC):
    """Source of calibration records."""

    @abstractmethod
    def poll(self) -> dict | None:
        """Return the next calibration record, or None if nothing arrived yet."""
        ...

    def close(self) -> None:
        """Detach from the feed. No more records are consumed afterwards."""


class CameraInfoFile(CalibrationFeed):
    """Reads a CameraInfo JSON file, which may be written after startup."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def poll(self) -> dict | None:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text())
        except json.JSONDecodeError as e:
            # File may still be half-written
            logger.debug(f"Calibration file {self.path} not readable yet: {e}")
            return None


class StaticCalibration(CalibrationFeed):
    """Delivers a fixed matrix once. Used in mock mode and tests."""

    def __init__(self, matrix: list[float]):
        self._record: dict | None = {"K": list(matrix)}

    def poll(self) -> dict | None:
        record, self._record = self._record, None
        return record

    def close(self) -> None:
        self._record = None


def wait_for_intrinsics(
    store: IntrinsicsStore,
    feed: CalibrationFeed,
    is_ok: Callable[[], bool] = lambda: True,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> bool:
    """Block until the store is ready, then detach the feed.

    Malformed records are logged and skipped. Returns False only if `is_ok`
    turned false (shutdown) before intrinsics arrived.
    """
    try:
        while is_ok() and not store.is_ready():
            record = feed.poll()
            if record is None:
                time.sleep(poll_interval)
                continue
            try:
                store.update(record)
            except InvalidIntrinsicsError as e:
                logger.warning(f"Ignoring calibration record: {e}")
    finally:
        feed.close()
    return store.is_ready()
