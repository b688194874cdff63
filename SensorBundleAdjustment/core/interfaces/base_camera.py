"""
Base interface for camera sensor models.

Camera objects are loaded and owned outside the bundle adjustment layer.
Adapters and residuals only read them, possibly from several threads at
once, so implementations must be immutable after construction.
"""

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np


class CameraModel(ABC):
    """
    Abstract camera model.

    Implementations:
        - PinholeCamera
        - OpticalBarCamera
        - LinescanCamera
        - AdjustedCamera (wraps any of the above)
    """

    @abstractmethod
    def point_to_pixel(self, point: np.ndarray) -> np.ndarray:
        """
        Project a 3D point in world (ECEF) coordinates into the image.

        Args:
            point: 3D point (3,)

        Returns:
            Pixel (column, row) as a (2,) array

        Raises:
            ProjectionFailure: If the point does not project into the camera
        """
        pass

    @abstractmethod
    def camera_center(self, pixel: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Camera center in world coordinates.

        Args:
            pixel: Pixel at which to evaluate the center. Only matters for
                   sensors whose position changes across the image.

        Returns:
            Camera center (3,)
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(center={np.round(self.camera_center(), 3)})"
