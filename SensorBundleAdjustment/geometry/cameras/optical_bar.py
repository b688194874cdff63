"""
Optical bar (panoramic) camera, as flown on film reconnaissance satellites.

The lens sweeps across track about the flight direction while the platform
moves, so each image column is exposed at a different time. Film motion
compensation partially cancels the resulting along-track smear.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from SensorBundleAdjustment.core.exceptions import ConfigurationError, ProjectionFailure
from SensorBundleAdjustment.core.interfaces.base_camera import CameraModel


MAX_SCAN_ITERATIONS = 50
SCAN_TIME_TOLERANCE = 1e-10


@dataclass(frozen=True, eq=False)
class OpticalBarCamera(CameraModel):
    """
    Panoramic scanning camera.

    Camera coordinates: x along track, y across track, z along the
    boresight at mid-scan. ``rotation`` rotates camera to world coordinates.
    The platform moves along the camera x axis.

    Attributes:
        center: Camera center at mid-scan (3,)
        rotation: Camera-to-world rotation (3, 3)
        focal_length: Focal length in meters
        pixel_size: Pixel pitch in meters
        optical_center: Pixel (cx, cy) of the mid-scan boresight
        speed: Platform speed in m/s
        motion_compensation: Fraction of the along-track image motion
                             removed by film translation
        scan_time: Duration of one full scan in seconds
        scan_angle: Total scan angle in radians
        image_size: Optional (width, height)
    """
    center: np.ndarray
    rotation: np.ndarray
    focal_length: float
    pixel_size: float
    optical_center: np.ndarray
    speed: float
    motion_compensation: float
    scan_time: float
    scan_angle: float = np.radians(70.0)
    image_size: Optional[Tuple[int, int]] = None

    def __post_init__(self):
        object.__setattr__(self, 'center', np.asarray(self.center, dtype=float).reshape(3))
        object.__setattr__(self, 'rotation', np.asarray(self.rotation, dtype=float).reshape(3, 3))
        object.__setattr__(self, 'optical_center',
                           np.asarray(self.optical_center, dtype=float).reshape(2))
        if self.focal_length <= 0 or self.pixel_size <= 0:
            raise ConfigurationError("Focal length and pixel size must be positive")
        if self.scan_time <= 0 or self.scan_angle <= 0:
            raise ConfigurationError("Scan time and scan angle must be positive")

    @property
    def extra_params(self) -> np.ndarray:
        """Parameters beyond center and focus: speed, motion compensation, scan time."""
        return np.array([self.speed, self.motion_compensation, self.scan_time])

    @property
    def _pixels_per_radian(self) -> float:
        return self.focal_length / self.pixel_size

    @property
    def _scan_rate(self) -> float:
        return self.scan_angle / self.scan_time

    def _position_at(self, t: float) -> np.ndarray:
        return self.center + self.speed * t * self.rotation[:, 0]

    def point_to_pixel(self, point: np.ndarray) -> np.ndarray:
        point = np.asarray(point, dtype=float)

        # Exposure time depends on the scan angle, which depends on the
        # platform position at that time. Fixed-point iteration from mid-scan.
        t = 0.0
        for _ in range(MAX_SCAN_ITERATIONS):
            point_cam = self.rotation.T @ (point - self._position_at(t))
            if not np.all(np.isfinite(point_cam)):
                raise ProjectionFailure(f"Non-finite camera coordinates for point {point}")
            if point_cam[2] <= 0:
                raise ProjectionFailure(f"Point {point} is behind the camera")

            theta = np.arctan2(point_cam[1], point_cam[2])
            t_new = theta / self._scan_rate
            if abs(t_new - t) < SCAN_TIME_TOLERANCE:
                t = t_new
                break
            t = t_new
        else:
            raise ProjectionFailure(f"Scan time solve did not converge for point {point}")

        point_cam = self.rotation.T @ (point - self._position_at(t))
        theta = np.arctan2(point_cam[1], point_cam[2])
        radius = np.hypot(point_cam[1], point_cam[2])
        along = point_cam[0] + self.motion_compensation * self.speed * t

        cx, cy = self.optical_center
        pixel = np.array([
            cx + self._pixels_per_radian * theta,
            cy + self._pixels_per_radian * along / radius,
        ])
        if not np.all(np.isfinite(pixel)):
            raise ProjectionFailure(f"Non-finite pixel for point {point}")
        return pixel

    def camera_center(self, pixel: Optional[np.ndarray] = None) -> np.ndarray:
        if pixel is None:
            return self.center.copy()
        theta = (pixel[0] - self.optical_center[0]) / self._pixels_per_radian
        return self._position_at(theta / self._scan_rate)
