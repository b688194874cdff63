"""
Camera constraints: keep camera poses near their starting adjustment.

Adds the pose priors selected by the configuration to every camera:
CamError when CAMERA_WEIGHT is positive, RotTransError when a rotation or
translation weight is positive, and CamUncertaintyError when a camera
position uncertainty is set.
"""

from typing import Sequence

import numpy as np

from SensorBundleAdjustment.core.exceptions import ConfigurationError
from SensorBundleAdjustment.core.interfaces.base_camera import CameraModel
from SensorBundleAdjustment.core.structures.control_network import ControlNetwork
from SensorBundleAdjustment.core.structures.parameter_storage import ParameterStorage
from SensorBundleAdjustment.logger import get_logger

from .cost_functions import CamError, CamUncertaintyError, RotTransError
from .problem import Problem

logger = get_logger("bundle_adjustment.camera_constraints")


def add_camera_constraints(config,
                           cameras: Sequence[CameraModel],
                           cnet: ControlNetwork,
                           param_storage: ParameterStorage,
                           problem: Problem) -> int:
    """
    Add the configured pose priors for every camera.

    The current adjustment in param_storage is taken as the original one.
    Pose priors carry no robust loss.

    Args:
        config: BundleAdjustConfig
        cameras: Unadjusted cameras, indexed like the storage cameras
        cnet: Control network, used to count pixel observations per camera
        param_storage: Parameter storage
        problem: Problem receiving the residual blocks

    Returns:
        Number of residual blocks added

    Raises:
        ConfigurationError: Camera count does not match the storage
    """
    if len(cameras) != param_storage.num_cameras:
        raise ConfigurationError(
            f"Got {len(cameras)} cameras for a storage with {param_storage.num_cameras}"
        )

    use_cam_error = config.CAMERA_WEIGHT > 0
    use_rot_trans = config.ROTATION_WEIGHT > 0 or config.TRANSLATION_WEIGHT > 0
    use_uncertainty = config.CAMERA_POSITION_UNCERTAINTY is not None

    num_obs = cnet.num_observations_per_camera(len(cameras)) if use_uncertainty else None

    num_blocks = 0
    for icam, camera in enumerate(cameras):
        block = param_storage.get_camera_block(icam)
        orig_adj = np.array(block.values, dtype=float)

        if use_cam_error:
            problem.add_residual_block(CamError.from_config(orig_adj, config), None, [block])
            num_blocks += 1

        if use_rot_trans:
            problem.add_residual_block(RotTransError.from_config(orig_adj, config), None, [block])
            num_blocks += 1

        if use_uncertainty:
            # Rotations are about the original center, so only translation moves it
            orig_ctr = np.asarray(camera.camera_center(), dtype=float) + orig_adj[:3]
            cost = CamUncertaintyError.from_config(orig_ctr, orig_adj, int(num_obs[icam]), config)
            problem.add_residual_block(cost, None, [block])
            num_blocks += 1

    logger.info(f"Camera constraints: {num_blocks} residual blocks for {len(cameras)} cameras")
    return num_blocks
