"""
Camera wrapped by a rigid adjustment.

The adjustment is a translation plus an axis-angle rotation about a fixed
rotation center, which is the underlying camera's center. Projecting a point
through the adjusted camera applies the inverse adjustment to the point and
then projects it with the underlying camera.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.spatial.transform import Rotation

from SensorBundleAdjustment.core.interfaces.base_camera import CameraModel


@dataclass(frozen=True, eq=False)
class AdjustedCamera(CameraModel):
    camera: CameraModel
    translation: np.ndarray
    rotation_vector: np.ndarray
    rotation_center: Optional[np.ndarray] = None

    def __post_init__(self):
        object.__setattr__(self, 'translation', np.asarray(self.translation, dtype=float).reshape(3))
        object.__setattr__(self, 'rotation_vector',
                           np.asarray(self.rotation_vector, dtype=float).reshape(3))
        if self.rotation_center is None:
            object.__setattr__(self, 'rotation_center', self.camera.camera_center())
        else:
            object.__setattr__(self, 'rotation_center',
                               np.asarray(self.rotation_center, dtype=float).reshape(3))

    @property
    def rotation(self) -> Rotation:
        return Rotation.from_rotvec(self.rotation_vector)

    def point_to_pixel(self, point: np.ndarray) -> np.ndarray:
        offset = np.asarray(point, dtype=float) - self.rotation_center - self.translation
        adjusted_point = self.rotation.inv().apply(offset) + self.rotation_center
        return self.camera.point_to_pixel(adjusted_point)

    def camera_center(self, pixel: Optional[np.ndarray] = None) -> np.ndarray:
        center = self.camera.camera_center(pixel)
        return self.rotation.apply(center - self.rotation_center) + self.rotation_center + self.translation
