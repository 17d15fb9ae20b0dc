"""Time source precondition."""

import logging
import time
from typing import Callable

from .errors import TimeNotValidError

logger = logging.getLogger("look_at.clock")

DEFAULT_TIME_TIMEOUT = 5.0


def wait_for_valid_time(
    now: Callable[[], float] = time.time,
    timeout: float = DEFAULT_TIME_TIMEOUT,
    poll_interval: float = 0.01,
) -> float:
    """Wait until `now()` reports a non-zero time.

    A simulated clock reads 0 until the simulator publishes its first tick.
    The wait itself is measured on the monotonic wall clock.

    Returns:
        The first valid time read

    Raises:
        TimeNotValidError: If no valid time was seen within `timeout` seconds
    """
    deadline = time.monotonic() + timeout
    while True:
        t = now()
        if t > 0:
            logger.debug(f"Time source valid at t={t:.3f}")
            return t
        if time.monotonic() >= deadline:
            raise TimeNotValidError(f"Timed-out waiting for valid time ({timeout}s)")
        time.sleep(poll_interval)
