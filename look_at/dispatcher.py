"""Head controller client: bounded handshake, then fire-and-forget goals."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from .errors import ActuatorUnavailableError, GoalSubmissionError
from .models import ActuatorGoal, ConnectionState, ConnectResult
from .transport import ControllerTransport

logger = logging.getLogger("look_at.dispatcher")

DEFAULT_HANDSHAKE_TIMEOUT = 2.0
DEFAULT_MAX_ATTEMPTS = 3


class ActuatorGoalDispatcher:
    """Owns the connection to the head controller and submits pointing goals.

    State machine: DISCONNECTED -> CONNECTING -> READY | FAILED. Both READY and
    FAILED are terminal. Goals are only accepted in READY; they are handed to a
    single background sender so `send_goal` never waits on the wire or on the
    head's motion. A goal still queued when a newer one arrives is cancelled,
    so a slow link never builds a backlog of stale targets.
    """

    def __init__(
        self,
        transport: ControllerTransport,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        if handshake_timeout <= 0:
            raise ValueError(f"handshake_timeout must be positive, got {handshake_timeout}")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

        self._transport = transport
        self.handshake_timeout = handshake_timeout
        self.max_attempts = max_attempts
        self.attempts = 0

        self._state = ConnectionState.DISCONNECTED
        self._lock = threading.Lock()
        # Single worker; at most one goal waits behind the one on the wire
        self._sender = ThreadPoolExecutor(max_workers=1, thread_name_prefix="goal")
        self._pending: Future | None = None

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    def connect(self, is_ok: Callable[[], bool] = lambda: True) -> ConnectResult:
        """Run the handshake. Blocks at most handshake_timeout * max_attempts.

        Args:
            is_ok: Health predicate; the handshake gives up early once it is False

        Returns:
            ConnectResult with state READY, or FAILED and an ActuatorUnavailableError
        """
        with self._lock:
            if self._state is ConnectionState.READY:
                return ConnectResult(ConnectionState.READY, self.attempts)
            if self._state is not ConnectionState.DISCONNECTED:
                return ConnectResult(
                    self._state,
                    self.attempts,
                    ActuatorUnavailableError(
                        f"Cannot connect: dispatcher is {self._state.value}"
                    ),
                )
            self._state = ConnectionState.CONNECTING

        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            if not is_ok():
                break
            self.attempts = attempt
            try:
                ready = self._transport.wait_for_server(self.handshake_timeout)
            except Exception as e:
                logger.warning(f"Handshake attempt {attempt} failed: {e}")
                last_error = e
                continue
            if ready:
                with self._lock:
                    self._state = ConnectionState.READY
                logger.info(f"Head controller connected after {attempt} attempt(s)")
                return ConnectResult(ConnectionState.READY, attempt)
            logger.debug(
                f"Waiting for the head controller to come up "
                f"(attempt {attempt}/{self.max_attempts})"
            )

        with self._lock:
            self._state = ConnectionState.FAILED
        error = ActuatorUnavailableError(
            f"Head controller not available after {self.attempts} attempt(s) "
            f"of {self.handshake_timeout}s"
            + (f" (last error: {last_error})" if last_error is not None else "")
        )
        error.__cause__ = last_error
        return ConnectResult(ConnectionState.FAILED, self.attempts, error)

    def send_goal(self, goal: ActuatorGoal) -> Future:
        """Submit a goal without waiting for delivery or execution.

        Returns:
            Future resolved once the transport delivered the goal (or failed)

        Raises:
            GoalSubmissionError: If not READY or the controller link is down
        """
        with self._lock:
            if self._state is not ConnectionState.READY:
                raise GoalSubmissionError(
                    f"Cannot submit goal: dispatcher is {self._state.value}"
                )
            if not self._transport.is_connected:
                raise GoalSubmissionError("Head controller link is down")

            if self._pending is not None and self._pending.cancel():
                logger.debug("Dropped queued goal superseded by a newer one")
            try:
                future = self._sender.submit(self._transport.send_goal, goal)
            except RuntimeError as e:
                raise GoalSubmissionError(f"Goal sender is shut down: {e}") from e
            self._pending = future

        future.add_done_callback(_log_send_result)
        return future

    def close(self) -> None:
        """Stop the sender and release the transport. Queued goals are discarded."""
        self._sender.shutdown(wait=False, cancel_futures=True)
        self._transport.close()


def _log_send_result(future: Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Goal delivery failed: {error}")
