import threading
import time

import pytest

from look_at.dispatcher import ActuatorGoalDispatcher
from look_at.errors import ActuatorUnavailableError, GoalSubmissionError
from look_at.models import ActuatorGoal, ConnectionState, TargetPoint
from look_at.transport import MockTransport

FRAME = "/stereo_optical_frame"


def _goal(x: float = 0.0) -> ActuatorGoal:
    return ActuatorGoal.look_at(TargetPoint(x, 0.0, 1.0), FRAME, stamp=1.0)


class _FlakyTransport(MockTransport):
    """Handshake succeeds on the n-th call."""

    def __init__(self, succeed_on: int):
        super().__init__()
        self.succeed_on = succeed_on
        self.states_seen = []
        self.dispatcher = None

    def wait_for_server(self, timeout):
        self.handshake_calls += 1
        self.states_seen.append(self.dispatcher.state)
        if self.handshake_calls >= self.succeed_on:
            self._connected = True
            return True
        return False


def test_connect_first_attempt():
    transport = _FlakyTransport(succeed_on=1)
    dispatcher = ActuatorGoalDispatcher(transport, handshake_timeout=0.01)
    transport.dispatcher = dispatcher
    assert dispatcher.state is ConnectionState.DISCONNECTED

    result = dispatcher.connect()

    assert result.ok
    assert result.error is None
    assert result.attempts == 1
    assert transport.states_seen == [ConnectionState.CONNECTING]
    assert dispatcher.state is ConnectionState.READY


def test_connect_succeeds_on_last_attempt():
    transport = _FlakyTransport(succeed_on=3)
    dispatcher = ActuatorGoalDispatcher(transport, handshake_timeout=0.01, max_attempts=3)
    transport.dispatcher = dispatcher
    result = dispatcher.connect()
    assert result.ok
    assert result.attempts == 3


@pytest.mark.parametrize("max_attempts", [1, 3, 5])
def test_connect_fails_after_exactly_max_attempts(max_attempts):
    transport = MockTransport(available=False)
    dispatcher = ActuatorGoalDispatcher(
        transport, handshake_timeout=0.01, max_attempts=max_attempts
    )
    result = dispatcher.connect()
    assert not result.ok
    assert isinstance(result.error, ActuatorUnavailableError)
    assert result.state is ConnectionState.FAILED
    assert transport.handshake_calls == max_attempts
    assert dispatcher.state is ConnectionState.FAILED


def test_failed_handshake_takes_timeout_times_attempts():
    transport = MockTransport(available=False)
    dispatcher = ActuatorGoalDispatcher(transport, handshake_timeout=0.1, max_attempts=3)
    start = time.monotonic()
    result = dispatcher.connect()
    elapsed = time.monotonic() - start
    assert not result.ok
    assert 0.3 <= elapsed < 0.6


def test_failed_is_terminal():
    transport = MockTransport(available=False)
    dispatcher = ActuatorGoalDispatcher(transport, handshake_timeout=0.01, max_attempts=2)
    dispatcher.connect()
    transport.available = True
    again = dispatcher.connect()
    assert not again.ok
    assert transport.handshake_calls == 2


def test_connect_when_ready_does_not_handshake_again():
    transport = MockTransport()
    dispatcher = ActuatorGoalDispatcher(transport)
    assert dispatcher.connect().ok
    assert dispatcher.connect().ok
    assert transport.handshake_calls == 1


def test_connect_gives_up_on_shutdown():
    transport = MockTransport(available=False)
    dispatcher = ActuatorGoalDispatcher(transport, handshake_timeout=0.01)
    result = dispatcher.connect(is_ok=lambda: False)
    assert not result.ok
    assert transport.handshake_calls == 0


def test_invalid_configuration():
    with pytest.raises(ValueError):
        ActuatorGoalDispatcher(MockTransport(), max_attempts=0)
    with pytest.raises(ValueError):
        ActuatorGoalDispatcher(MockTransport(), handshake_timeout=0)


def test_send_goal_rejected_before_ready():
    dispatcher = ActuatorGoalDispatcher(MockTransport())
    with pytest.raises(GoalSubmissionError):
        dispatcher.send_goal(_goal())


def test_send_goal_rejected_while_connecting():
    release = threading.Event()
    entered = threading.Event()

    class _SlowHandshake(MockTransport):
        def wait_for_server(self, timeout):
            entered.set()
            release.wait(5)
            return super().wait_for_server(timeout)

    dispatcher = ActuatorGoalDispatcher(_SlowHandshake())
    worker = threading.Thread(target=dispatcher.connect)
    worker.start()
    assert entered.wait(5)
    with pytest.raises(GoalSubmissionError):
        dispatcher.send_goal(_goal())
    release.set()
    worker.join(5)
    assert dispatcher.state is ConnectionState.READY


def test_send_goal_does_not_block_on_slow_transport():
    transport = MockTransport(send_delay=0.5)
    dispatcher = ActuatorGoalDispatcher(transport)
    assert dispatcher.connect().ok

    start = time.monotonic()
    first = dispatcher.send_goal(_goal(0.1))
    second = dispatcher.send_goal(_goal(0.2))
    assert time.monotonic() - start < 0.1

    second.result(timeout=2)
    assert first.cancelled() or first.done()
    assert transport.goals[-1].target.point.x == 0.2
    dispatcher.close()


def test_newer_goal_supersedes_queued_ones():
    transport = MockTransport(send_delay=0.2)
    dispatcher = ActuatorGoalDispatcher(transport)
    dispatcher.connect()

    futures = [dispatcher.send_goal(_goal(i / 10)) for i in range(5)]
    futures[-1].result(timeout=2)

    # at most one older goal made it onto the wire, the rest were replaced
    assert sum(not f.cancelled() for f in futures[:4]) <= 1
    assert len(transport.goals) <= 2
    assert transport.goals[-1].target.point.x == 0.4
    dispatcher.close()


def test_goals_sent_after_delivery_are_all_delivered():
    transport = MockTransport()
    dispatcher = ActuatorGoalDispatcher(transport)
    dispatcher.connect()
    for i in range(3):
        dispatcher.send_goal(_goal(i / 10)).result(timeout=2)
    assert [g.target.point.x for g in transport.goals] == [0.0, 0.1, 0.2]
    dispatcher.close()


def test_async_send_failure_is_reported_through_future():
    transport = MockTransport(fail_sends=True)
    dispatcher = ActuatorGoalDispatcher(transport)
    dispatcher.connect()
    future = dispatcher.send_goal(_goal())
    assert isinstance(future.exception(timeout=2), GoalSubmissionError)
    # dispatcher stays usable
    transport.fail_sends = False
    dispatcher.send_goal(_goal(0.5)).result(timeout=2)
    assert len(transport.goals) == 1


def test_send_goal_when_link_down():
    transport = MockTransport()
    dispatcher = ActuatorGoalDispatcher(transport)
    dispatcher.connect()
    transport.close()
    with pytest.raises(GoalSubmissionError):
        dispatcher.send_goal(_goal())


def test_handshake_error_counts_as_failed_attempt():
    class _BrokenTransport(MockTransport):
        def wait_for_server(self, timeout):
            self.handshake_calls += 1
            raise ValueError("bad controller address")

    transport = _BrokenTransport()
    dispatcher = ActuatorGoalDispatcher(transport, handshake_timeout=0.01, max_attempts=3)
    result = dispatcher.connect()

    assert result.state is ConnectionState.FAILED
    assert isinstance(result.error, ActuatorUnavailableError)
    assert isinstance(result.error.__cause__, ValueError)
    assert "bad controller address" in str(result.error)
    assert transport.handshake_calls == 3
    assert dispatcher.state is ConnectionState.FAILED
