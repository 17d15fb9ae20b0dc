"""Data models for the click-to-look pipeline."""

import enum
import math
from dataclasses import dataclass

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from .errors import ActuatorUnavailableError

# Fixed goal parameters
DEFAULT_DEPTH = 1.0  # arbitrary distance along the optical axis, only direction matters
MIN_DURATION_S = 0.5
MAX_VELOCITY_RAD_S = 1.0


@dataclass(frozen=True)
class CameraIntrinsics:
    """Pinhole intrinsics: focal lengths and principal point in pixels."""

    fx: float
    fy: float
    cx: float
    cy: float

    @classmethod
    def from_matrix(cls, k) -> "CameraIntrinsics":
        """Build from a 3x3 matrix given row-major as 9 values (or a 3x3 array)."""
        k = np.asarray(k, dtype=np.float64).reshape(-1)
        return cls(fx=float(k[0]), fy=float(k[4]), cx=float(k[2]), cy=float(k[5]))

    @property
    def matrix(self) -> np.ndarray:
        return np.array(
            [
                [self.fx, 0.0, self.cx],
                [0.0, self.fy, self.cy],
                [0.0, 0.0, 1.0],
            ]
        )

    @property
    def is_degenerate(self) -> bool:
        """True if either focal length is zero, negative or non-finite."""
        return not all(math.isfinite(f) and f > 0.0 for f in (self.fx, self.fy))


@dataclass(frozen=True)
class PixelSelection:
    """A pixel picked by the operator."""

    u: float
    v: float
    stamp: float


@dataclass(frozen=True)
class TargetPoint:
    """3D point in the camera optical frame."""

    x: float
    y: float
    z: float


# --- Wire messages ---


class Vector3(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float


class PointStamped(BaseModel):
    model_config = ConfigDict(frozen=True)

    frame_id: str
    stamp: float
    point: Vector3


class ActuatorGoal(BaseModel):
    """Point-head goal: aim `pointing_axis` of `pointing_frame` at `target`."""

    model_config = ConfigDict(frozen=True)

    pointing_frame: str
    pointing_axis: Vector3 = Vector3(x=0.0, y=0.0, z=1.0)
    target: PointStamped
    min_duration: float = Field(default=MIN_DURATION_S, ge=0)
    max_velocity: float = Field(default=MAX_VELOCITY_RAD_S, ge=0)

    @classmethod
    def look_at(cls, target: TargetPoint, frame_id: str, stamp: float) -> "ActuatorGoal":
        """Goal that points the camera's optical axis at `target`."""
        return cls(
            pointing_frame=frame_id,
            target=PointStamped(
                frame_id=frame_id,
                stamp=stamp,
                point=Vector3(x=target.x, y=target.y, z=target.z),
            ),
        )


# --- Dispatcher state ---


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ConnectResult:
    """Outcome of the controller handshake."""

    state: ConnectionState
    attempts: int
    error: ActuatorUnavailableError | None = None

    @property
    def ok(self) -> bool:
        return self.state is ConnectionState.READY
