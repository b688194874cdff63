"""
Ground constraints: GCPs and heights from a reference DEM.

Adds one residual block per ground control or DEM point of a control
network, anchoring the point to its known position.
"""

from dataclasses import dataclass
from typing import Optional

from SensorBundleAdjustment.core.structures.control_network import ControlNetwork, ControlPointType
from SensorBundleAdjustment.core.structures.parameter_storage import ParameterStorage
from SensorBundleAdjustment.logger import get_logger

from .cost_functions import LLHError, XYZError
from .loss_functions import get_loss_function
from .problem import Problem

logger = get_logger("bundle_adjustment.ground_constraints")


@dataclass
class GroundConstraintStats:
    """Counters updated while adding ground constraints"""
    num_gcp: int = 0
    num_gcp_or_dem_residuals: int = 0


def add_gcp_or_dem_constraint(config,
                              cost_function_str: Optional[str],
                              use_llh_error: Optional[bool],
                              fix_gcp_xyz: Optional[bool],
                              cnet: ControlNetwork,
                              param_storage: ParameterStorage,
                              problem: Problem,
                              stats: GroundConstraintStats) -> None:
    """
    Add a residual block for every GCP and DEM point of the network.

    Tie points and points flagged as outliers are skipped. GCPs may be
    constrained in lon-lat-height (use_llh_error) so height can carry its
    own sigma; DEM points and the default use a Cartesian difference.

    Args:
        config: Provides ROBUST_THRESHOLD, datum and the defaults below
        cost_function_str: Robust loss name, None for COST_FUNCTION
        use_llh_error: Constrain GCPs in geodetic coordinates, None for USE_LLH_ERROR
        fix_gcp_xyz: Keep GCP positions constant, None for FIX_GCP_XYZ
        cnet: Control network, indexed like the storage points
        param_storage: Parameter storage
        problem: Problem receiving the residual blocks
        stats: Counters, updated in place

    Raises:
        ConfigurationError: Unknown loss name
    """
    if cost_function_str is None:
        cost_function_str = config.COST_FUNCTION
    if use_llh_error is None:
        use_llh_error = bool(config.USE_LLH_ERROR)
    if fix_gcp_xyz is None:
        fix_gcp_xyz = bool(config.FIX_GCP_XYZ)

    for ipt, cp in enumerate(cnet):
        if not cp.is_ground_constraint:
            continue
        if param_storage.get_point_outlier(ipt):
            continue

        # Observed position, as read from the GCP file or the DEM
        observation = cp.position
        is_gcp = cp.type == ControlPointType.GROUND_CONTROL

        if use_llh_error and is_gcp:
            cost_function = LLHError(observation, cp.sigma, config.datum)
        else:
            cost_function = XYZError(observation, cp.sigma)

        loss_function = get_loss_function(cost_function_str, config.ROBUST_THRESHOLD)

        point_block = param_storage.get_point_block(ipt)
        problem.add_residual_block(cost_function, loss_function, [point_block])

        stats.num_gcp_or_dem_residuals += 1
        if is_gcp:
            stats.num_gcp += 1

        if cp.fixed or (fix_gcp_xyz and is_gcp):
            problem.set_parameter_block_constant(point_block)
        else:
            problem.set_parameter_block_variable(point_block)

    logger.info(f"Ground constraints: {stats.num_gcp} GCPs, "
                f"{stats.num_gcp_or_dem_residuals} GCP/DEM residual blocks")
