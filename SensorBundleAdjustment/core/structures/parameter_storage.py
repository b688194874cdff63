"""
Parameter storage for bundle adjustment.

All optimizable values live in a handful of contiguous NumPy arrays owned by
ParameterStorage. Residuals and the solver refer to them through
ParameterBlock handles: a stable key plus a writable view into the owning
array. Keys, not object identity, decide whether two references denote the
same block, so blocks shared between cameras (shared intrinsics) are
recognised as one.

Camera (pose) blocks hold a 6-element adjustment: translation (3) followed by
an axis-angle rotation (3). Intrinsic blocks hold multiplicative scale
factors relative to each wrapped camera's original values, initialised to 1.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from SensorBundleAdjustment.core.exceptions import ConfigurationError


NUM_POINT_PARAMS = 3
NUM_CAMERA_PARAMS = 6
NUM_CENTER_PARAMS = 2
NUM_FOCUS_PARAMS = 1
NUM_OPTICAL_BAR_EXTRA_PARAMS = 3


@dataclass(frozen=True)
class ParameterBlock:
    """
    Handle to one contiguous block of optimizable values.

    Attributes:
        key: Stable identity, e.g. ('point', 12) or ('center', 0)
        values: Writable view into the storage array
    """
    key: Tuple[str, int]
    values: np.ndarray = field(compare=False, repr=False)

    @property
    def size(self) -> int:
        return int(self.values.size)


@dataclass(frozen=True)
class IntrinsicOptions:
    """Which intrinsic blocks are shared by all cameras"""
    center_shared: bool = True
    focus_shared: bool = True
    distortion_shared: bool = True

    @classmethod
    def from_string(cls, shared: str) -> 'IntrinsicOptions':
        """
        Parse a comma or space separated list of shared intrinsics.

        Args:
            shared: e.g. 'center,focus' or 'all' or 'none'

        Returns:
            IntrinsicOptions
        """
        tokens = {t.strip().lower() for t in shared.replace(',', ' ').split() if t.strip()}
        if tokens == {'all'}:
            return cls(True, True, True)
        if tokens in (set(), {'none'}):
            return cls(False, False, False)

        unknown = tokens - {'center', 'focus', 'distortion'}
        if unknown:
            raise ConfigurationError(f"Unknown intrinsic names: {sorted(unknown)}")
        return cls(center_shared='center' in tokens,
                   focus_shared='focus' in tokens,
                   distortion_shared='distortion' in tokens)


class ParameterStorage:
    """
    Owns every parameter block of one bundle adjustment run.

    Blocks are sized once at construction and persist for the run. Only the
    solver writes into them, between residual evaluation passes.
    """

    def __init__(self,
                 num_points: int,
                 num_cameras: int,
                 distortion_sizes: Optional[Sequence[int]] = None,
                 intrinsics_options: Optional[IntrinsicOptions] = None):
        """
        Args:
            num_points: Number of 3D points
            num_cameras: Number of cameras
            distortion_sizes: Size of the distortion/extra block per camera.
                              Defaults to zero for every camera.
            intrinsics_options: Intrinsic sharing policy
        """
        if distortion_sizes is None:
            distortion_sizes = [0] * num_cameras
        if len(distortion_sizes) != num_cameras:
            raise ConfigurationError(
                f"Got {len(distortion_sizes)} distortion sizes for {num_cameras} cameras"
            )

        self.intrinsics_options = intrinsics_options or IntrinsicOptions()
        opts = self.intrinsics_options

        self._points = np.zeros((num_points, NUM_POINT_PARAMS))
        self._outliers = np.zeros(num_points, dtype=bool)
        self._cameras = np.zeros((num_cameras, NUM_CAMERA_PARAMS))

        self._centers = np.ones((1 if opts.center_shared else num_cameras, NUM_CENTER_PARAMS))
        self._focuses = np.ones((1 if opts.focus_shared else num_cameras, NUM_FOCUS_PARAMS))

        if opts.distortion_shared and num_cameras > 0:
            if len(set(distortion_sizes)) > 1:
                raise ConfigurationError(
                    "Cannot share distortion between cameras with different "
                    f"distortion sizes: {sorted(set(distortion_sizes))}"
                )
            self._distortions = [np.ones(distortion_sizes[0])]
        else:
            self._distortions = [np.ones(size) for size in distortion_sizes]

    @classmethod
    def from_control_network(cls,
                             cnet,
                             num_cameras: int,
                             distortion_sizes: Optional[Sequence[int]] = None,
                             intrinsics_options: Optional[IntrinsicOptions] = None) -> 'ParameterStorage':
        """Create storage with points initialised from a control network."""
        storage = cls(len(cnet), num_cameras, distortion_sizes, intrinsics_options)
        for ipt, point in enumerate(cnet):
            storage.set_point(ipt, point.position)
        return storage

    @property
    def num_points(self) -> int:
        return self._points.shape[0]

    @property
    def num_cameras(self) -> int:
        return self._cameras.shape[0]

    # Block accessors

    def get_point_block(self, ipt: int) -> ParameterBlock:
        return ParameterBlock(('point', ipt), self._points[ipt])

    def get_camera_block(self, icam: int) -> ParameterBlock:
        return ParameterBlock(('camera', icam), self._cameras[icam])

    def get_center_block(self, icam: int) -> ParameterBlock:
        index = 0 if self.intrinsics_options.center_shared else icam
        self._check_camera(icam)
        return ParameterBlock(('center', index), self._centers[index])

    def get_focus_block(self, icam: int) -> ParameterBlock:
        index = 0 if self.intrinsics_options.focus_shared else icam
        self._check_camera(icam)
        return ParameterBlock(('focus', index), self._focuses[index])

    def get_distortion_block(self, icam: int) -> ParameterBlock:
        index = 0 if self.intrinsics_options.distortion_shared else icam
        self._check_camera(icam)
        return ParameterBlock(('distortion', index), self._distortions[index])

    def get_intrinsic_blocks(self, icam: int) -> List[ParameterBlock]:
        """Center, focus and distortion blocks of a camera, in that order."""
        return [self.get_center_block(icam),
                self.get_focus_block(icam),
                self.get_distortion_block(icam)]

    # Values

    def set_point(self, ipt: int, xyz) -> None:
        self._points[ipt] = np.asarray(xyz, dtype=float).reshape(NUM_POINT_PARAMS)

    def set_camera(self, icam: int, adjustment) -> None:
        self._cameras[icam] = np.asarray(adjustment, dtype=float).reshape(NUM_CAMERA_PARAMS)

    def set_point_outlier(self, ipt: int, outlier: bool = True) -> None:
        self._outliers[ipt] = outlier

    def get_point_outlier(self, ipt: int) -> bool:
        return bool(self._outliers[ipt])

    def points(self) -> np.ndarray:
        """Copy of all point values (N, 3)."""
        return self._points.copy()

    def cameras(self) -> np.ndarray:
        """Copy of all camera adjustments (M, 6)."""
        return self._cameras.copy()

    def _check_camera(self, icam: int) -> None:
        if not 0 <= icam < self.num_cameras:
            raise IndexError(f"Camera index {icam} out of range [0, {self.num_cameras})")

    def __repr__(self) -> str:
        return (f"ParameterStorage(points={self.num_points}, cameras={self.num_cameras}, "
                f"intrinsics={self.intrinsics_options})")
