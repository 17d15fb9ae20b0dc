"""Inverse pinhole model: pixel -> ray point in the camera optical frame."""

from .errors import InvalidIntrinsicsError
from .models import DEFAULT_DEPTH, CameraIntrinsics, TargetPoint


def project(
    pixel: tuple[float, float],
    intrinsics: CameraIntrinsics,
    depth: float = DEFAULT_DEPTH,
) -> TargetPoint:
    """Deproject a pixel to the point at `depth` along its viewing ray.

    Args:
        pixel: (u, v) pixel coordinates, not range-checked
        intrinsics: Camera intrinsics
        depth: Distance along the optical axis (z of the result)

    Returns:
        TargetPoint in the camera optical frame

    Raises:
        InvalidIntrinsicsError: If fx or fy is zero, negative or non-finite
    """
    if intrinsics.is_degenerate:
        raise InvalidIntrinsicsError(
            f"Degenerate focal length fx={intrinsics.fx}, fy={intrinsics.fy}"
        )
    u, v = pixel
    x = (u - intrinsics.cx) / intrinsics.fx
    y = (v - intrinsics.cy) / intrinsics.fy
    return TargetPoint(x=x * depth, y=y * depth, z=depth)


def reproject(point: TargetPoint, intrinsics: CameraIntrinsics) -> tuple[float, float]:
    """Forward pinhole projection of a camera-frame point back to (u, v)."""
    if point.z == 0:
        raise ValueError("Cannot project a point on the camera plane (z=0)")
    u = intrinsics.fx * point.x / point.z + intrinsics.cx
    v = intrinsics.fy * point.y / point.z + intrinsics.cy
    return u, v
