"""
Camera Adapters

Expose heterogeneous camera models to the solver through one parameter
block layout:

    [point (3)], [pose (6)], [center (2)], [focus (1)], [distortion/extra (n)]

The adjusted variant only uses the first two blocks and can wrap any
camera model. The other variants additionally expose intrinsics as
scale factors on the wrapped camera's original values (offsets for
values that start at zero, see apply_intrinsic_factors).

evaluate() rebuilds a temporary camera from the current block values and
projects the point. The wrapped camera is never mutated, so one adapter can
be evaluated from several threads at once.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from enum import Enum
from typing import Dict, List, Optional, Sequence, Type

import numpy as np

from SensorBundleAdjustment.core.exceptions import ConfigurationError, InputInvariantViolation
from SensorBundleAdjustment.core.interfaces.base_camera import CameraModel
from SensorBundleAdjustment.core.structures.parameter_storage import (
    NUM_POINT_PARAMS,
    NUM_CAMERA_PARAMS,
    NUM_CENTER_PARAMS,
    NUM_FOCUS_PARAMS,
    NUM_OPTICAL_BAR_EXTRA_PARAMS
)
from SensorBundleAdjustment.geometry.cameras import (
    AdjustedCamera,
    LinescanCamera,
    OpticalBarCamera,
    PinholeCamera
)
from SensorBundleAdjustment.logger import get_logger

logger = get_logger("bundle_adjustment.camera_adapters")


# Originals smaller than this are moved by offset instead of by scale
ZERO_INTRINSIC_TOLERANCE = 1e-10


def apply_intrinsic_factors(original, factors) -> np.ndarray:
    """
    Intrinsic values for the given block factors.

    A factor scales its original value. Where the original is (near) zero,
    scaling could never move it, so the factor acts as an offset instead:
    original + (factor - 1). A factor of 1 always returns the original.
    """
    original = np.asarray(original, dtype=float)
    factors = np.asarray(factors, dtype=float).reshape(original.shape)
    return np.where(np.abs(original) < ZERO_INTRINSIC_TOLERANCE,
                    original + (factors - 1.0),
                    original * factors)


class CameraVariant(Enum):
    """Supported camera adapter variants"""
    ADJUSTED = "adjusted"
    PINHOLE = "pinhole"
    OPTICAL_BAR = "optical_bar"
    CSM = "csm"


class CameraAdapter(ABC):
    """
    Uniform parameter-block view of one camera.

    Subclasses declare their intrinsic layout and how to rebuild the camera
    from intrinsic scale factors.
    """

    variant: CameraVariant
    camera_type: Type[CameraModel] = CameraModel

    def __init__(self, camera: CameraModel):
        self._check_camera_type(camera)
        self.camera = camera
        # Pose rotations are applied about the original camera center
        self.rotation_center = camera.camera_center()

        sizes = self.block_sizes()
        if len(sizes) != self.num_parameter_blocks():
            raise ConfigurationError(
                f"{self.variant.value} adapter declares {self.num_parameter_blocks()} blocks "
                f"but {len(sizes)} block sizes"
            )
        if sum(sizes) != self.num_params():
            raise ConfigurationError(
                f"{self.variant.value} adapter block sizes {sizes} do not sum to "
                f"{self.num_params()} parameters"
            )

    @classmethod
    def _check_camera_type(cls, camera: CameraModel) -> None:
        if not isinstance(camera, cls.camera_type):
            raise ConfigurationError(
                f"{cls.__name__} needs a {cls.camera_type.__name__}, "
                f"got {type(camera).__name__}"
            )

    def num_point_params(self) -> int:
        return NUM_POINT_PARAMS

    def num_pose_params(self) -> int:
        return NUM_CAMERA_PARAMS

    @abstractmethod
    def num_intrinsic_params(self) -> int:
        pass

    @abstractmethod
    def num_parameter_blocks(self) -> int:
        pass

    @abstractmethod
    def block_sizes(self) -> List[int]:
        """Ordered block sizes: point, pose, then any intrinsic blocks."""
        pass

    @abstractmethod
    def build_camera(self, intrinsic_blocks: Sequence[np.ndarray]) -> CameraModel:
        """Camera with intrinsics scaled by the given blocks."""
        pass

    def num_params(self) -> int:
        return self.num_point_params() + self.num_pose_params() + self.num_intrinsic_params()

    def validate_blocks(self, parameter_blocks: Sequence[np.ndarray]) -> None:
        sizes = self.block_sizes()
        if len(parameter_blocks) != len(sizes):
            raise InputInvariantViolation(
                f"{self.variant.value} adapter expects {len(sizes)} parameter blocks, "
                f"got {len(parameter_blocks)}"
            )
        for i, (block, size) in enumerate(zip(parameter_blocks, sizes)):
            if np.size(block) != size:
                raise InputInvariantViolation(
                    f"Parameter block {i} of {self.variant.value} adapter has size "
                    f"{np.size(block)}, expected {size}"
                )

    def evaluate(self, parameter_blocks: Sequence[np.ndarray]) -> np.ndarray:
        """
        Project the point block through the adjusted camera.

        Args:
            parameter_blocks: Values in block_sizes() order

        Returns:
            Pixel (2,)

        Raises:
            InputInvariantViolation: Wrong number or sizes of blocks
            ProjectionFailure: Point does not project into the camera
        """
        self.validate_blocks(parameter_blocks)
        point = np.asarray(parameter_blocks[0], dtype=float)
        pose = np.asarray(parameter_blocks[1], dtype=float)

        camera = self.build_camera(parameter_blocks[2:])
        adjusted = AdjustedCamera(camera, pose[:3], pose[3:], rotation_center=self.rotation_center)
        return adjusted.point_to_pixel(point)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(blocks={self.block_sizes()})"


class AdjustedCameraAdapter(CameraAdapter):
    """Pose-only adapter around any camera model."""

    variant = CameraVariant.ADJUSTED

    def num_intrinsic_params(self) -> int:
        return 0

    def num_parameter_blocks(self) -> int:
        return 2

    def block_sizes(self) -> List[int]:
        return [NUM_POINT_PARAMS, NUM_CAMERA_PARAMS]

    def build_camera(self, intrinsic_blocks: Sequence[np.ndarray]) -> CameraModel:
        return self.camera


class IntrinsicCameraAdapter(CameraAdapter):
    """Adapter with center, focus and a variable-size tail block."""

    def __init__(self, camera: CameraModel):
        self._check_camera_type(camera)
        # Tail size is fixed when the adapter is created
        self._num_tail_params = self.tail_size(camera)
        super().__init__(camera)

    @staticmethod
    @abstractmethod
    def tail_size(camera: CameraModel) -> int:
        pass

    def num_intrinsic_params(self) -> int:
        return NUM_CENTER_PARAMS + NUM_FOCUS_PARAMS + self._num_tail_params

    def num_parameter_blocks(self) -> int:
        return 5

    def block_sizes(self) -> List[int]:
        return [NUM_POINT_PARAMS, NUM_CAMERA_PARAMS,
                NUM_CENTER_PARAMS, NUM_FOCUS_PARAMS, self._num_tail_params]


class PinholeCameraAdapter(IntrinsicCameraAdapter):
    variant = CameraVariant.PINHOLE
    camera_type = PinholeCamera

    @staticmethod
    def tail_size(camera: PinholeCamera) -> int:
        return int(camera.distortion.size)

    def build_camera(self, intrinsic_blocks: Sequence[np.ndarray]) -> PinholeCamera:
        center, focus, distortion = intrinsic_blocks
        cam = self.camera
        return replace(cam,
                       optical_center=apply_intrinsic_factors(cam.optical_center, center),
                       focal_length=float(apply_intrinsic_factors(cam.focal_length, focus[0])),
                       distortion=apply_intrinsic_factors(cam.distortion, distortion))


class OpticalBarCameraAdapter(IntrinsicCameraAdapter):
    """Tail block scales speed, motion compensation and scan time."""

    variant = CameraVariant.OPTICAL_BAR
    camera_type = OpticalBarCamera

    @staticmethod
    def tail_size(camera: OpticalBarCamera) -> int:
        return NUM_OPTICAL_BAR_EXTRA_PARAMS

    def build_camera(self, intrinsic_blocks: Sequence[np.ndarray]) -> OpticalBarCamera:
        center, focus, extra = intrinsic_blocks
        cam = self.camera
        return replace(cam,
                       optical_center=apply_intrinsic_factors(cam.optical_center, center),
                       focal_length=float(apply_intrinsic_factors(cam.focal_length, focus[0])),
                       speed=float(apply_intrinsic_factors(cam.speed, extra[0])),
                       motion_compensation=float(apply_intrinsic_factors(cam.motion_compensation, extra[1])),
                       scan_time=float(apply_intrinsic_factors(cam.scan_time, extra[2])))


class CsmCameraAdapter(IntrinsicCameraAdapter):
    variant = CameraVariant.CSM
    camera_type = LinescanCamera

    @staticmethod
    def tail_size(camera: LinescanCamera) -> int:
        return int(camera.distortion.size)

    def build_camera(self, intrinsic_blocks: Sequence[np.ndarray]) -> LinescanCamera:
        center, focus, distortion = intrinsic_blocks
        cam = self.camera
        return replace(cam,
                       optical_center=apply_intrinsic_factors(cam.optical_center, center),
                       focal_length=float(apply_intrinsic_factors(cam.focal_length, focus[0])),
                       distortion=apply_intrinsic_factors(cam.distortion, distortion))


# Adapter registry

VARIANT_ADAPTERS: Dict[CameraVariant, Type[CameraAdapter]] = {
    CameraVariant.ADJUSTED: AdjustedCameraAdapter,
    CameraVariant.PINHOLE: PinholeCameraAdapter,
    CameraVariant.OPTICAL_BAR: OpticalBarCameraAdapter,
    CameraVariant.CSM: CsmCameraAdapter,
}

CAMERA_TYPE_VARIANTS: Dict[Type[CameraModel], CameraVariant] = {
    PinholeCamera: CameraVariant.PINHOLE,
    OpticalBarCamera: CameraVariant.OPTICAL_BAR,
    LinescanCamera: CameraVariant.CSM,
}


def register_camera_adapter(camera_type: Type[CameraModel],
                            variant: CameraVariant,
                            adapter_class: Type[CameraAdapter]) -> None:
    """Register an adapter class for a new camera type."""
    VARIANT_ADAPTERS[variant] = adapter_class
    CAMERA_TYPE_VARIANTS[camera_type] = variant


def create_camera_adapter(camera: CameraModel,
                          variant: Optional[CameraVariant] = None) -> CameraAdapter:
    """
    Create the adapter for a camera.

    Args:
        camera: Loaded camera model
        variant: Explicit variant. Defaults to the variant registered for the
                 camera's type, or ADJUSTED for unregistered types. Use
                 ADJUSTED when intrinsics are not solved for.

    Returns:
        CameraAdapter

    Raises:
        ConfigurationError: Variant does not fit the camera, or the adapter
                            layout is inconsistent
    """
    if variant is None:
        variant = CameraVariant.ADJUSTED
        for cls in type(camera).__mro__:
            if cls in CAMERA_TYPE_VARIANTS:
                variant = CAMERA_TYPE_VARIANTS[cls]
                break

    if not isinstance(variant, CameraVariant):
        try:
            variant = CameraVariant(str(variant).lower())
        except ValueError:
            raise ConfigurationError(f"Unknown camera variant: {variant}")

    adapter_class = VARIANT_ADAPTERS.get(variant)
    if adapter_class is None:
        raise ConfigurationError(f"No adapter registered for variant {variant.value}")

    adapter = adapter_class(camera)
    logger.debug(f"Created {adapter}")
    return adapter
