"""Transports to the remote head controller."""

import asyncio
import json
import logging
import threading
import time
from abc import ABC, abstractmethod

import websockets
from websockets.protocol import State

from .errors import GoalSubmissionError
from .models import ActuatorGoal

logger = logging.getLogger("look_at.transport")

DEFAULT_ENDPOINT = "/head_controller/point_head_action"
RECONNECT_INTERVAL = 0.1  # seconds between refused connection attempts
SEND_TIMEOUT = 1.0


class ControllerTransport(ABC):
    """Link to the head controller's goal endpoint."""

    @abstractmethod
    def wait_for_server(self, timeout: float) -> bool:
        """Block up to `timeout` seconds for the controller to accept us.

        Returns:
            True once the controller answered the handshake, False on timeout
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    def send_goal(self, goal: ActuatorGoal) -> None:
        """Deliver one goal. May block on the wire, never on goal execution.

        Raises:
            GoalSubmissionError: If the goal could not be delivered
        """
        ...

    def close(self) -> None:
        """Release the link."""


class WebSocketTransport(ControllerTransport):
    """JSON-over-WebSocket link to the head controller.

    Handshake: send {"type": "handshake", "endpoint": ...}, expect {"type": "ready"}.
    Goals: {"type": "goal", "endpoint": ..., "goal": {...}}, no reply expected.
    The asyncio loop runs in its own daemon thread so callers stay synchronous.
    """

    def __init__(
        self,
        uri: str,
        endpoint: str = DEFAULT_ENDPOINT,
        send_timeout: float = SEND_TIMEOUT,
        reconnect_interval: float = RECONNECT_INTERVAL,
    ):
        self.uri = uri
        self.endpoint = endpoint
        self.send_timeout = send_timeout
        self.reconnect_interval = reconnect_interval
        self._ws = None
        self._drain_task: asyncio.Task | None = None
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="controller-ws", daemon=True
        )
        self._thread.start()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    def wait_for_server(self, timeout: float) -> bool:
        future = asyncio.run_coroutine_threadsafe(
            self._handshake_within(timeout), self._loop
        )
        return future.result()

    async def _handshake_within(self, timeout: float) -> bool:
        try:
            self._ws = await asyncio.wait_for(self._handshake(), timeout)
        except asyncio.TimeoutError:
            return False
        self._drain_task = asyncio.create_task(self._drain(self._ws))
        logger.info(f"Head controller ready at {self.uri} ({self.endpoint})")
        return True

    async def _handshake(self):
        """Connect and handshake, retrying refused connections until cancelled."""
        while True:
            try:
                ws = await websockets.connect(self.uri)
            except (OSError, websockets.exceptions.InvalidHandshake) as e:
                logger.debug(f"Controller at {self.uri} not reachable: {e}")
                await asyncio.sleep(self.reconnect_interval)
                continue

            try:
                await ws.send(
                    json.dumps({"type": "handshake", "endpoint": self.endpoint})
                )
                reply = json.loads(await ws.recv())
            except asyncio.CancelledError:
                await ws.close()
                raise
            except (websockets.exceptions.ConnectionClosed, json.JSONDecodeError) as e:
                logger.debug(f"Handshake with {self.uri} failed: {e}")
                await ws.close()
                await asyncio.sleep(self.reconnect_interval)
                continue

            if isinstance(reply, dict) and reply.get("type") == "ready":
                return ws
            logger.debug(f"Controller rejected handshake: {reply}")
            await ws.close()
            await asyncio.sleep(self.reconnect_interval)

    async def _drain(self, ws):
        """Consume controller feedback so the socket never backs up."""
        try:
            async for message in ws:
                logger.debug(f"Controller says: {message}")
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning(f"Head controller connection closed: {e}")

    def send_goal(self, goal: ActuatorGoal) -> None:
        if not self.is_connected:
            raise GoalSubmissionError("Head controller connection is not open")
        message = json.dumps(
            {
                "type": "goal",
                "endpoint": self.endpoint,
                "goal": goal.model_dump(),
            }
        )
        future = asyncio.run_coroutine_threadsafe(self._ws.send(message), self._loop)
        try:
            future.result(timeout=self.send_timeout)
        except TimeoutError as e:
            future.cancel()
            raise GoalSubmissionError(
                f"Goal send timed out after {self.send_timeout}s"
            ) from e
        except websockets.exceptions.ConnectionClosed as e:
            raise GoalSubmissionError(f"Head controller connection lost: {e}") from e

    def close(self) -> None:
        async def _close():
            if self._drain_task is not None:
                self._drain_task.cancel()
            if self._ws is not None:
                await self._ws.close()

        if self._loop.is_running():
            try:
                asyncio.run_coroutine_threadsafe(_close(), self._loop).result(
                    timeout=self.send_timeout
                )
            except TimeoutError:
                logger.warning("Timed out closing head controller connection")
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=self.send_timeout)


class MockTransport(ControllerTransport):
    """In-process stand-in for the head controller.

    Args:
        available: Whether the handshake succeeds
        send_delay: Seconds each send_goal blocks, to mimic a slow link
        fail_sends: Raise GoalSubmissionError on every send
    """

    def __init__(
        self,
        available: bool = True,
        send_delay: float = 0.0,
        fail_sends: bool = False,
    ):
        self.available = available
        self.send_delay = send_delay
        self.fail_sends = fail_sends
        self.handshake_calls = 0
        self.goals: list[ActuatorGoal] = []
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def wait_for_server(self, timeout: float) -> bool:
        self.handshake_calls += 1
        if not self.available:
            time.sleep(timeout)
            return False
        self._connected = True
        return True

    def send_goal(self, goal: ActuatorGoal) -> None:
        if self.send_delay:
            time.sleep(self.send_delay)
        if self.fail_sends:
            raise GoalSubmissionError("mock transport send failure")
        p = goal.target.point
        logger.info(f"[mock] goal: look at ({p.x:.3f}, {p.y:.3f}, {p.z:.3f})")
        self.goals.append(goal)

    def close(self) -> None:
        self._connected = False
