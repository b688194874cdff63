"""
Pushbroom linescan camera.

A single detector line is swept over the ground by the platform motion.
Each image row is acquired at its own time, with position and attitude
varying linearly in time.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from SensorBundleAdjustment.core.exceptions import ConfigurationError, ProjectionFailure
from SensorBundleAdjustment.core.interfaces.base_camera import CameraModel


MAX_LINE_ITERATIONS = 50
LINE_TOLERANCE = 1e-8  # in lines
OFFSET_TOLERANCE = 1e-14  # normalized along-track offset


@dataclass(frozen=True, eq=False)
class LinescanCamera(CameraModel):
    """
    Linescan sensor.

    Camera coordinates: x along the detector, y along track, z along the
    boresight. The detector lies on the camera y = 0 plane; ``rotation``
    rotates camera to world coordinates at time zero (row ``cy``).

    Attributes:
        position: Camera center at time zero (3,)
        velocity: Platform velocity in world coordinates (3,)
        rotation: Camera-to-world rotation at time zero (3, 3)
        angular_velocity: Attitude rate, rotation vector per second in
                          camera coordinates (3,)
        line_period: Seconds per image row
        focal_length: Focal length in pixels
        optical_center: (cx, cy): detector column of the boresight and the
                        row acquired at time zero
        distortion: Radial distortion coefficients (k1, k2, ...)
        image_size: Optional (width, height)
    """
    position: np.ndarray
    velocity: np.ndarray
    rotation: np.ndarray
    line_period: float
    focal_length: float
    optical_center: np.ndarray
    distortion: np.ndarray = field(default_factory=lambda: np.zeros(0))
    angular_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    image_size: Optional[Tuple[int, int]] = None

    def __post_init__(self):
        for name, shape in (('position', (3,)), ('velocity', (3,)), ('rotation', (3, 3)),
                            ('optical_center', (2,)), ('angular_velocity', (3,))):
            object.__setattr__(self, name, np.asarray(getattr(self, name), dtype=float).reshape(shape))
        object.__setattr__(self, 'distortion', np.asarray(self.distortion, dtype=float).reshape(-1))
        if self.line_period <= 0:
            raise ConfigurationError(f"Line period must be positive, got {self.line_period}")

    def _time_of_row(self, row: float) -> float:
        return (row - self.optical_center[1]) * self.line_period

    def _position_at(self, t: float) -> np.ndarray:
        return self.position + self.velocity * t

    def _rotation_at(self, t: float) -> np.ndarray:
        if not np.any(self.angular_velocity):
            return self.rotation
        return self.rotation @ Rotation.from_rotvec(self.angular_velocity * t).as_matrix()

    def _to_camera(self, point: np.ndarray, t: float) -> np.ndarray:
        return self._rotation_at(t).T @ (point - self._position_at(t))

    def _along_track_offset(self, point: np.ndarray, t: float) -> float:
        """Normalized along-track coordinate; zero when the detector sees the point."""
        point_cam = self._to_camera(point, t)
        return point_cam[1] / np.linalg.norm(point_cam)

    def _solve_time(self, point: np.ndarray) -> float:
        # Initial guess ignores attitude rate, which makes the condition linear
        look = point - self.position
        rate = self.rotation[:, 1] @ self.velocity
        if rate == 0:
            raise ProjectionFailure("Platform velocity has no along-track component")
        t0 = (self.rotation[:, 1] @ look) / rate
        t1 = t0 + self.line_period

        g0 = self._along_track_offset(point, t0)
        g1 = self._along_track_offset(point, t1)
        for _ in range(MAX_LINE_ITERATIONS):
            if abs(t1 - t0) < LINE_TOLERANCE * self.line_period or abs(g1) < OFFSET_TOLERANCE:
                return t1
            if g1 == g0:
                break
            t0, t1 = t1, t1 - g1 * (t1 - t0) / (g1 - g0)
            g0, g1 = g1, self._along_track_offset(point, t1)
            if not np.isfinite(t1):
                break
        raise ProjectionFailure(f"Line time solve did not converge for point {point}")

    def point_to_pixel(self, point: np.ndarray) -> np.ndarray:
        point = np.asarray(point, dtype=float)
        if not np.all(np.isfinite(point)):
            raise ProjectionFailure(f"Non-finite point {point}")

        t = self._solve_time(point)
        point_cam = self._to_camera(point, t)
        if point_cam[2] <= 0:
            raise ProjectionFailure(f"Point {point} is behind the camera")

        x = point_cam[0] / point_cam[2]
        r2 = x * x
        scale = 1.0
        for i, k in enumerate(self.distortion):
            scale += k * r2 ** (i + 1)

        pixel = np.array([
            self.optical_center[0] + self.focal_length * x * scale,
            self.optical_center[1] + t / self.line_period,
        ])
        if not np.all(np.isfinite(pixel)):
            raise ProjectionFailure(f"Non-finite pixel for point {point}")
        return pixel

    def camera_center(self, pixel: Optional[np.ndarray] = None) -> np.ndarray:
        if pixel is None:
            return self.position.copy()
        return self._position_at(self._time_of_row(pixel[1]))
