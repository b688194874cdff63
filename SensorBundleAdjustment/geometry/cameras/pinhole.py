"""
Pinhole (frame) camera with OpenCV lens distortion.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

import cv2
import numpy as np

from SensorBundleAdjustment.core.exceptions import ConfigurationError, ProjectionFailure
from SensorBundleAdjustment.core.interfaces.base_camera import CameraModel


# Distortion vector lengths accepted by cv2.projectPoints
OPENCV_DISTORTION_SIZES = (4, 5, 8, 12, 14)

# Points closer than this to the image plane do not project
MIN_DEPTH = 1e-10


@dataclass(frozen=True, eq=False)
class PinholeCamera(CameraModel):
    """
    Frame camera.

    Camera coordinates follow the OpenCV convention (x right, y down, z
    forward). ``rotation`` rotates camera to world coordinates.

    Attributes:
        center: Camera center in world coordinates (3,)
        rotation: Camera-to-world rotation (3, 3)
        focal_length: Focal length in pixels
        optical_center: Principal point (cx, cy) in pixels
        distortion: OpenCV distortion coefficients (k1, k2, p1, p2, k3, ...).
                    Shorter vectors are zero padded, so a (k1, k2) radial
                    model is two coefficients.
        image_size: Optional (width, height)
    """
    center: np.ndarray
    rotation: np.ndarray
    focal_length: float
    optical_center: np.ndarray
    distortion: np.ndarray = field(default_factory=lambda: np.zeros(0))
    image_size: Optional[Tuple[int, int]] = None

    def __post_init__(self):
        object.__setattr__(self, 'center', np.asarray(self.center, dtype=float).reshape(3))
        object.__setattr__(self, 'rotation', np.asarray(self.rotation, dtype=float).reshape(3, 3))
        object.__setattr__(self, 'optical_center',
                           np.asarray(self.optical_center, dtype=float).reshape(2))
        object.__setattr__(self, 'distortion',
                           np.asarray(self.distortion, dtype=float).reshape(-1))
        object.__setattr__(self, 'focal_length', float(self.focal_length))

        if self.distortion.size > OPENCV_DISTORTION_SIZES[-1]:
            raise ConfigurationError(
                f"At most {OPENCV_DISTORTION_SIZES[-1]} distortion coefficients are supported, "
                f"got {self.distortion.size}"
            )

    @property
    def intrinsic_matrix(self) -> np.ndarray:
        cx, cy = self.optical_center
        return np.array([
            [self.focal_length, 0, cx],
            [0, self.focal_length, cy],
            [0, 0, 1]
        ])

    def _opencv_distortion(self) -> Optional[np.ndarray]:
        """Distortion zero padded to the next length OpenCV accepts."""
        if self.distortion.size == 0:
            return None
        size = next(s for s in OPENCV_DISTORTION_SIZES if s >= self.distortion.size)
        padded = np.zeros(size)
        padded[:self.distortion.size] = self.distortion
        return padded

    def point_to_pixel(self, point: np.ndarray) -> np.ndarray:
        point_cam = self.rotation.T @ (np.asarray(point, dtype=float) - self.center)

        if not np.all(np.isfinite(point_cam)):
            raise ProjectionFailure(f"Non-finite camera coordinates for point {point}")
        if point_cam[2] <= MIN_DEPTH:
            raise ProjectionFailure(f"Point {point} is behind the camera")

        dist = self._opencv_distortion()
        if dist is None:
            pixel = (self.intrinsic_matrix @ (point_cam / point_cam[2]))[:2]
        else:
            # omit world to camera rotation & translation, already applied
            projected, _ = cv2.projectPoints(point_cam.reshape(1, 1, 3), np.zeros(3), np.zeros(3),
                                             self.intrinsic_matrix, dist)
            pixel = projected.reshape(2)

        if not np.all(np.isfinite(pixel)):
            raise ProjectionFailure(f"Non-finite pixel for point {point}")
        return pixel

    def camera_center(self, pixel: Optional[np.ndarray] = None) -> np.ndarray:
        return self.center.copy()
