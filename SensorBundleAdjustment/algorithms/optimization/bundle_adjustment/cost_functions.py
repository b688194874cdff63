"""
Bundle Adjustment Cost Functions

Residual functions over parameter block values:
- ReprojectionError: pixel reprojection error of one observation
- DispXyzError: stereo disparity consistency of a fixed terrain point
- CamError, RotTransError: keep cameras near their starting pose
- CamUncertaintyError: steep barrier on camera center motion
- LLHError, XYZError: ground control / DEM height constraints

Each cost function declares its residual count and block sizes, evaluates
from a list of block values, and provides numerical Jacobians. Cost
functions keep only read-only state, so they can be evaluated concurrently.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from SensorBundleAdjustment.core.exceptions import ConfigurationError, InputInvariantViolation
from SensorBundleAdjustment.core.structures.control_network import Observation
from SensorBundleAdjustment.core.structures.parameter_storage import (
    IntrinsicOptions,
    ParameterBlock,
    ParameterStorage,
    NUM_CAMERA_PARAMS,
    NUM_POINT_PARAMS
)
from SensorBundleAdjustment.geometry.datum import Datum
from SensorBundleAdjustment.geometry.disparity import InterpolatedDisparity

from .camera_adapters import CameraAdapter
from .numeric_diff import NumericDiffMethod, numeric_jacobians


class CostFunction(ABC):
    """
    Base class for residual functions.

    Subclasses implement evaluate(); __call__ adds block validation.
    """

    differentiation = NumericDiffMethod.CENTRAL

    @property
    @abstractmethod
    def num_residuals(self) -> int:
        pass

    @abstractmethod
    def parameter_block_sizes(self) -> List[int]:
        pass

    @abstractmethod
    def evaluate(self, parameter_blocks: Sequence[np.ndarray]) -> np.ndarray:
        pass

    def validate_blocks(self, parameter_blocks: Sequence[np.ndarray]) -> None:
        sizes = self.parameter_block_sizes()
        if len(parameter_blocks) != len(sizes):
            raise InputInvariantViolation(
                f"{self.__class__.__name__} expects {len(sizes)} parameter blocks, "
                f"got {len(parameter_blocks)}"
            )
        for i, (block, size) in enumerate(zip(parameter_blocks, sizes)):
            if np.size(block) != size:
                raise InputInvariantViolation(
                    f"{self.__class__.__name__} block {i} has size {np.size(block)}, expected {size}"
                )

    def __call__(self, parameter_blocks: Sequence[np.ndarray]) -> np.ndarray:
        self.validate_blocks(parameter_blocks)
        residuals = np.asarray(self.evaluate(parameter_blocks), dtype=float).reshape(-1)
        if residuals.size != self.num_residuals:
            raise InputInvariantViolation(
                f"{self.__class__.__name__} produced {residuals.size} residuals, "
                f"expected {self.num_residuals}"
            )
        return residuals

    def jacobians(self,
                  parameter_blocks: Sequence[np.ndarray],
                  constant_blocks: Optional[Sequence[bool]] = None) -> List[Optional[np.ndarray]]:
        """
        Numerical Jacobian per parameter block.

        Returns:
            List of (num_residuals, block_size) matrices, None for constant blocks
        """
        self.validate_blocks(parameter_blocks)
        return numeric_jacobians(self.evaluate, parameter_blocks,
                                 self.differentiation, constant_blocks)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(residuals={self.num_residuals}, blocks={self.parameter_block_sizes()})"


class ReprojectionError(CostFunction):
    """
    Pixel reprojection error, (projected - observed) / sigma.

    Parameter blocks are the adapter's: point, pose and any intrinsics.
    ProjectionFailure from the adapter propagates to the caller.
    """

    def __init__(self, observation: np.ndarray, pixel_sigma: np.ndarray, adapter: CameraAdapter):
        self.observation = np.asarray(observation, dtype=float).reshape(2)
        self.pixel_sigma = np.asarray(pixel_sigma, dtype=float).reshape(2)
        if np.any(self.pixel_sigma <= 0):
            raise ConfigurationError(f"Pixel sigma must be positive, got {self.pixel_sigma}")
        self.adapter = adapter

    @classmethod
    def from_observation(cls, observation: Observation, adapter: CameraAdapter) -> 'ReprojectionError':
        return cls(observation.pixel, observation.sigma, adapter)

    @property
    def num_residuals(self) -> int:
        return 2

    def parameter_block_sizes(self) -> List[int]:
        return self.adapter.block_sizes()

    def evaluate(self, parameter_blocks):
        projected = self.adapter.evaluate(parameter_blocks)
        return (projected - self.observation) / self.pixel_sigma


# Logical parameter slots of a disparity residual
LEFT_SLOTS = ('left_pose', 'left_center', 'left_focus', 'left_distortion')
RIGHT_SLOTS = ('right_pose', 'right_center', 'right_focus', 'right_distortion')

# Slot value: index into the solver block list, or a block held fixed
SlotBinding = Union[int, ParameterBlock]


class DispXyzError(CostFunction):
    """
    Stereo disparity consistency of a fixed reference terrain point.

    The point is projected into the left camera, moved by the disparity at
    that pixel, and compared with its projection into the right camera:

        weight * (L + disparity(L) - R)

    An invalid disparity, or one larger than max_disp_error (when positive),
    gives a zero residual.

    Left and right cameras may share intrinsic blocks, so the parameter
    blocks passed by the solver are a deduplicated list. A slot table maps
    each logical slot (left pose, left center, ...) to its position in that
    list, or to a storage block held fixed.
    """

    def __init__(self,
                 max_disp_error: float,
                 reference_terrain_weight: float,
                 reference_xyz: np.ndarray,
                 disparity: InterpolatedDisparity,
                 left_adapter: CameraAdapter,
                 right_adapter: CameraAdapter,
                 slots: Dict[str, SlotBinding],
                 block_sizes: Sequence[int]):
        self.max_disp_error = float(max_disp_error)
        self.reference_terrain_weight = float(reference_terrain_weight)
        self.reference_xyz = np.asarray(reference_xyz, dtype=float).reshape(NUM_POINT_PARAMS)
        self.disparity = disparity
        self.left_adapter = left_adapter
        self.right_adapter = right_adapter
        self.slots = dict(slots)
        self._block_sizes = list(block_sizes)

        for slot in LEFT_SLOTS + RIGHT_SLOTS:
            if slot not in self.slots:
                raise InputInvariantViolation(f"Disparity residual has no binding for slot '{slot}'")
            binding = self.slots[slot]
            if isinstance(binding, int) and not 0 <= binding < len(self._block_sizes):
                raise InputInvariantViolation(
                    f"Slot '{slot}' refers to block {binding} of {len(self._block_sizes)}"
                )

    @classmethod
    def create(cls,
               max_disp_error: float,
               reference_terrain_weight: float,
               reference_xyz: np.ndarray,
               disparity: InterpolatedDisparity,
               left_adapter: CameraAdapter,
               right_adapter: CameraAdapter,
               param_storage: ParameterStorage,
               left_index: int,
               right_index: int,
               solve_intrinsics: bool,
               intrinsics_options: IntrinsicOptions) -> Tuple['DispXyzError', List[ParameterBlock]]:
        """
        Build the residual together with the blocks to register with the problem.

        Returns:
            (cost function, deduplicated parameter blocks)
        """
        blocks, slots = cls.get_residual_pointers(param_storage, left_index, right_index,
                                                  solve_intrinsics, intrinsics_options)
        cost = cls(max_disp_error, reference_terrain_weight, reference_xyz, disparity,
                   left_adapter, right_adapter, slots, [b.size for b in blocks])
        return cost, blocks

    @classmethod
    def from_config(cls,
                    config,
                    reference_xyz: np.ndarray,
                    disparity: InterpolatedDisparity,
                    left_adapter: CameraAdapter,
                    right_adapter: CameraAdapter,
                    param_storage: ParameterStorage,
                    left_index: int,
                    right_index: int) -> Tuple['DispXyzError', List[ParameterBlock]]:
        """create() with thresholds, weight and intrinsics policy taken from a BundleAdjustConfig."""
        return cls.create(config.MAX_DISP_ERROR, config.REFERENCE_TERRAIN_WEIGHT, reference_xyz,
                          disparity, left_adapter, right_adapter, param_storage,
                          left_index, right_index, bool(config.SOLVE_INTRINSICS),
                          config.intrinsics_options)

    @staticmethod
    def get_residual_pointers(param_storage: ParameterStorage,
                              left_index: int,
                              right_index: int,
                              solve_intrinsics: bool,
                              intrinsics_options: IntrinsicOptions
                              ) -> Tuple[List[ParameterBlock], Dict[str, SlotBinding]]:
        """
        Deduplicated parameter blocks of a left/right camera pair.

        Args:
            param_storage: Owner of the blocks
            left_index: Left camera index
            right_index: Right camera index
            solve_intrinsics: Whether intrinsic blocks are optimized
            intrinsics_options: Sharing policy; must match the storage layout

        Returns:
            (blocks, slots): blocks never repeats a key; slots maps each
            logical slot to an index into blocks, or to a storage block that
            stays fixed when intrinsics are not solved for
        """
        if intrinsics_options != param_storage.intrinsics_options:
            raise InputInvariantViolation(
                f"Intrinsic options {intrinsics_options} do not match the parameter storage "
                f"layout {param_storage.intrinsics_options}"
            )

        blocks: List[ParameterBlock] = []
        index_of_key: Dict[Tuple[str, int], int] = {}
        slots: Dict[str, SlotBinding] = {}

        def bind(slot: str, block: ParameterBlock, solved: bool) -> None:
            if not solved:
                slots[slot] = block
                return
            if block.key not in index_of_key:
                index_of_key[block.key] = len(blocks)
                blocks.append(block)
            slots[slot] = index_of_key[block.key]

        for icam, names in ((left_index, LEFT_SLOTS), (right_index, RIGHT_SLOTS)):
            pose_slot, center_slot, focus_slot, distortion_slot = names
            bind(pose_slot, param_storage.get_camera_block(icam), True)
            bind(center_slot, param_storage.get_center_block(icam), solve_intrinsics)
            bind(focus_slot, param_storage.get_focus_block(icam), solve_intrinsics)
            bind(distortion_slot, param_storage.get_distortion_block(icam), solve_intrinsics)

        return blocks, slots

    @property
    def num_residuals(self) -> int:
        return 2

    def parameter_block_sizes(self) -> List[int]:
        return list(self._block_sizes)

    def _resolve(self, slot: str, parameter_blocks: Sequence[np.ndarray]) -> np.ndarray:
        binding = self.slots[slot]
        if isinstance(binding, ParameterBlock):
            return binding.values
        return parameter_blocks[binding]

    def _adapter_blocks(self, adapter: CameraAdapter, names: Tuple[str, ...],
                        parameter_blocks: Sequence[np.ndarray]) -> List[np.ndarray]:
        """Point, pose and, for intrinsic adapters, the intrinsic blocks."""
        blocks = [self.reference_xyz]
        for slot in names[:adapter.num_parameter_blocks() - 1]:
            blocks.append(self._resolve(slot, parameter_blocks))
        return blocks

    def evaluate(self, parameter_blocks):
        left_blocks = self._adapter_blocks(self.left_adapter, LEFT_SLOTS, parameter_blocks)
        left_pixel = self.left_adapter.evaluate(left_blocks)

        disp = self.disparity(left_pixel)
        if np.ma.is_masked(disp):
            return np.zeros(2)
        disp = np.ma.getdata(disp)
        if self.max_disp_error > 0 and np.linalg.norm(disp) > self.max_disp_error:
            return np.zeros(2)

        right_blocks = self._adapter_blocks(self.right_adapter, RIGHT_SLOTS, parameter_blocks)
        right_pixel = self.right_adapter.evaluate(right_blocks)

        return self.reference_terrain_weight * (left_pixel + disp - right_pixel)


class CamError(CostFunction):
    """
    Difference between the original and the current camera adjustment.

    Positions are in meters and loosely held; rotations are in radians.
    """

    POSITION_WEIGHT = 1e-2
    ROTATION_WEIGHT = 5e1

    def __init__(self, orig_cam: np.ndarray, weight: float):
        self.orig_cam = np.array(orig_cam, dtype=float).reshape(NUM_CAMERA_PARAMS)
        self.weight = float(weight)

    @classmethod
    def from_config(cls, orig_cam: np.ndarray, config) -> 'CamError':
        return cls(orig_cam, config.CAMERA_WEIGHT)

    @property
    def num_residuals(self) -> int:
        return NUM_CAMERA_PARAMS

    def parameter_block_sizes(self) -> List[int]:
        return [NUM_CAMERA_PARAMS]

    def evaluate(self, parameter_blocks):
        diff = np.asarray(parameter_blocks[0], dtype=float) - self.orig_cam
        return np.concatenate([
            self.POSITION_WEIGHT * self.weight * diff[:3],
            self.ROTATION_WEIGHT * self.weight * diff[3:],
        ])

    def jacobians(self, parameter_blocks, constant_blocks=None):
        self.validate_blocks(parameter_blocks)
        if constant_blocks is not None and constant_blocks[0]:
            return [None]
        scale = np.repeat([self.POSITION_WEIGHT, self.ROTATION_WEIGHT], 3) * self.weight
        return [np.diag(scale)]


class RotTransError(CostFunction):
    """
    Translation and rotation change, each with its own weight.

    Unlike CamError there are no built-in scale constants.
    """

    def __init__(self, orig_cam: np.ndarray, rotation_weight: float, translation_weight: float):
        self.orig_cam = np.array(orig_cam, dtype=float).reshape(NUM_CAMERA_PARAMS)
        self.rotation_weight = float(rotation_weight)
        self.translation_weight = float(translation_weight)

    @classmethod
    def from_config(cls, orig_cam: np.ndarray, config) -> 'RotTransError':
        return cls(orig_cam, config.ROTATION_WEIGHT, config.TRANSLATION_WEIGHT)

    @property
    def num_residuals(self) -> int:
        return NUM_CAMERA_PARAMS

    def parameter_block_sizes(self) -> List[int]:
        return [NUM_CAMERA_PARAMS]

    def evaluate(self, parameter_blocks):
        diff = np.asarray(parameter_blocks[0], dtype=float) - self.orig_cam
        return np.concatenate([
            self.translation_weight * diff[:3],
            self.rotation_weight * diff[3:],
        ])

    def jacobians(self, parameter_blocks, constant_blocks=None):
        self.validate_blocks(parameter_blocks)
        if constant_blocks is not None and constant_blocks[0]:
            return [None]
        scale = np.repeat([self.translation_weight, self.rotation_weight], 3)
        return [np.diag(scale)]


class CamUncertaintyError(CostFunction):
    """
    Hard constraint on camera center horizontal and vertical motion.

    The center displacement is expressed in the North-East-Down frame at the
    original center. Each of the horizontal and vertical motion is divided by
    its uncertainty, raised to the 4th power and multiplied by
    camera_position_uncertainty_power * sqrt(num_pixel_obs), so the term
    overcomes this camera's reprojection errors once motion exceeds the
    uncertainty. The solver squares it again.

    Only the translation part of the 6-element pose block is used.
    """

    differentiation = NumericDiffMethod.RIDDERS

    def __init__(self,
                 orig_ctr: np.ndarray,
                 orig_adj: np.ndarray,
                 uncertainty: np.ndarray,
                 num_pixel_obs: int,
                 datum: Datum,
                 camera_position_uncertainty_power: float):
        """
        Args:
            orig_ctr: Original camera center (Cartesian)
            orig_adj: Original 6-element adjustment, giving orig_ctr
            uncertainty: (horizontal, vertical) uncertainty in meters
            num_pixel_obs: Number of pixel observations of this camera
            datum: Datum defining the local frame
            camera_position_uncertainty_power: Scale of the barrier
        """
        self.orig_ctr = np.asarray(orig_ctr, dtype=float).reshape(3)
        self.orig_adj = np.array(orig_adj, dtype=float).reshape(NUM_CAMERA_PARAMS)[:3]
        self.uncertainty = np.asarray(uncertainty, dtype=float).reshape(2)
        if np.any(self.uncertainty <= 0):
            raise ConfigurationError(f"Camera position uncertainty must be positive, got {self.uncertainty}")
        if num_pixel_obs < 0:
            raise ConfigurationError(f"Number of pixel observations must be non-negative, got {num_pixel_obs}")
        self.num_pixel_obs = int(num_pixel_obs)
        self.camera_position_uncertainty_power = float(camera_position_uncertainty_power)

        llh = datum.cartesian_to_geodetic(self.orig_ctr)
        self.ecef_to_ned = Datum.ecef_to_ned_matrix(llh)

    @classmethod
    def from_config(cls,
                    orig_ctr: np.ndarray,
                    orig_adj: np.ndarray,
                    num_pixel_obs: int,
                    config) -> 'CamUncertaintyError':
        """
        Raises:
            ConfigurationError: No camera position uncertainty configured
        """
        if config.CAMERA_POSITION_UNCERTAINTY is None:
            raise ConfigurationError("Camera position uncertainty is not set")
        return cls(orig_ctr, orig_adj, config.CAMERA_POSITION_UNCERTAINTY, num_pixel_obs,
                   config.datum, config.CAMERA_POSITION_UNCERTAINTY_POWER)

    @property
    def num_residuals(self) -> int:
        return 2

    def parameter_block_sizes(self) -> List[int]:
        return [NUM_CAMERA_PARAMS]

    def evaluate(self, parameter_blocks):
        cam_adj = np.asarray(parameter_blocks[0], dtype=float)

        # New center is orig_ctr + cam_adj - orig_adj, only the difference matters
        ned = self.ecef_to_ned @ (cam_adj[:3] - self.orig_adj)
        horizontal = np.hypot(ned[0], ned[1])
        vertical = abs(ned[2])

        scale = self.camera_position_uncertainty_power * np.sqrt(self.num_pixel_obs)
        return scale * np.array([
            (horizontal / self.uncertainty[0]) ** 4,
            (vertical / self.uncertainty[1]) ** 4,
        ])


class LLHError(CostFunction):
    """
    Ground control in longitude, latitude and height.

    Residual i is (llh(point)[i] - observed_llh[i]) / sigma[i]. Keeping the
    geodetic axes separate lets height carry a different sigma than the
    horizontal position. Sigma is in (degrees, degrees, meters).
    """

    def __init__(self, observation_xyz: np.ndarray, sigma: np.ndarray, datum: Datum):
        self.observation_xyz = np.asarray(observation_xyz, dtype=float).reshape(3)
        self.sigma = np.asarray(sigma, dtype=float).reshape(3)
        if np.any(self.sigma <= 0):
            raise ConfigurationError(f"Sigma must be positive, got {self.sigma}")
        self.datum = datum
        self.observation_llh = datum.cartesian_to_geodetic(self.observation_xyz)

    @property
    def num_residuals(self) -> int:
        return 3

    def parameter_block_sizes(self) -> List[int]:
        return [NUM_POINT_PARAMS]

    def evaluate(self, parameter_blocks):
        llh = self.datum.cartesian_to_geodetic(np.asarray(parameter_blocks[0], dtype=float))
        diff = llh - self.observation_llh
        diff[0] = (diff[0] + 180.0) % 360.0 - 180.0
        return diff / self.sigma


class XYZError(CostFunction):
    """Cartesian ground control, (point - observed) / sigma."""

    def __init__(self, observation_xyz: np.ndarray, sigma: np.ndarray):
        self.observation_xyz = np.asarray(observation_xyz, dtype=float).reshape(3)
        self.sigma = np.asarray(sigma, dtype=float).reshape(3)
        if np.any(self.sigma <= 0):
            raise ConfigurationError(f"Sigma must be positive, got {self.sigma}")

    @property
    def num_residuals(self) -> int:
        return 3

    def parameter_block_sizes(self) -> List[int]:
        return [NUM_POINT_PARAMS]

    def evaluate(self, parameter_blocks):
        return (np.asarray(parameter_blocks[0], dtype=float) - self.observation_xyz) / self.sigma

    def jacobians(self, parameter_blocks, constant_blocks=None):
        self.validate_blocks(parameter_blocks)
        if constant_blocks is not None and constant_blocks[0]:
            return [None]
        return [np.diag(1.0 / self.sigma)]
