"""
Interpolated stereo disparity field.

Maps a left-image pixel to the (dx, dy) offset of its match in the right
image. Lookups return a masked 2-vector; the mask is set when the pixel falls
outside the raster or any interpolation neighbour is invalid.
"""

from typing import Optional

import numpy as np
from scipy import ndimage


class InterpolatedDisparity:
    """
    Bilinearly interpolated disparity raster.

    Args:
        disparity: (H, W, 2) array of (dx, dy) per left pixel
        valid: Optional (H, W) boolean validity mask. Non-finite disparities
               are always invalid.
    """

    def __init__(self, disparity: np.ndarray, valid: Optional[np.ndarray] = None):
        disparity = np.asarray(disparity, dtype=float)
        if disparity.ndim != 3 or disparity.shape[2] != 2:
            raise ValueError(f"Disparity must be (H, W, 2), got {disparity.shape}")

        finite = np.all(np.isfinite(disparity), axis=2)
        if valid is None:
            valid = finite
        else:
            valid = np.asarray(valid, dtype=bool) & finite

        self._valid = valid
        # Channels are interpolated separately; invalid cells never contribute
        self._dx = np.where(valid, disparity[:, :, 0], 0.0)
        self._dy = np.where(valid, disparity[:, :, 1], 0.0)

    @property
    def shape(self):
        return self._valid.shape

    def __call__(self, pixel: np.ndarray) -> np.ma.MaskedArray:
        """
        Sample the disparity at a (column, row) pixel.

        Returns:
            Masked (2,) array; fully masked when invalid
        """
        col, row = float(pixel[0]), float(pixel[1])
        height, width = self._valid.shape

        if (not np.isfinite(col) or not np.isfinite(row)
                or col < 0 or row < 0 or col > width - 1 or row > height - 1):
            return np.ma.masked_array(np.zeros(2), mask=True)

        c0, r0 = int(np.floor(col)), int(np.floor(row))
        c1, r1 = min(c0 + 1, width - 1), min(r0 + 1, height - 1)
        if not (self._valid[r0, c0] and self._valid[r0, c1]
                and self._valid[r1, c0] and self._valid[r1, c1]):
            return np.ma.masked_array(np.zeros(2), mask=True)

        coords = np.array([[row], [col]])
        dx = ndimage.map_coordinates(self._dx, coords, order=1, mode='nearest')[0]
        dy = ndimage.map_coordinates(self._dy, coords, order=1, mode='nearest')[0]
        return np.ma.masked_array(np.array([dx, dy]), mask=False)
