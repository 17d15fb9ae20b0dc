"""Error types raised by the look-at pipeline."""


class LookAtError(Exception):
    """Base class for all look-at errors."""


class NotReadyError(LookAtError):
    """Intrinsics were requested before the calibration feed delivered them."""


class InvalidIntrinsicsError(LookAtError):
    """Camera intrinsics are malformed or degenerate (zero/non-finite focal length)."""


class ActuatorUnavailableError(LookAtError):
    """The head controller never answered the connection handshake."""


class GoalSubmissionError(LookAtError):
    """A goal could not be handed to the head controller."""


class TimeNotValidError(LookAtError):
    """The time source never reported a valid time during startup."""
