"""
Bundle Adjustment Module

Camera adapters, residual functions and problem assembly for sensor bundle
adjustment.

Components:
- Camera Adapters: uniform parameter blocks for adjusted, pinhole,
  optical bar and linescan (CSM) cameras
- Cost Functions: reprojection, disparity consistency, camera drift,
  camera position uncertainty and ground constraints
- Loss Functions: robust losses selected by name
- Problem: residual block registration, residuals and sparse Jacobian
- Ground Constraints: GCP and DEM point assembly
- Camera Constraints: pose priors selected by the configuration
- Solver: scipy least-squares adapter

Usage:
    from SensorBundleAdjustment.algorithms.optimization.bundle_adjustment import (
        Problem,
        ReprojectionError,
        LeastSquaresSolver,
        create_camera_adapter,
        get_loss_function
    )

    adapter = create_camera_adapter(camera)
    problem = Problem()
    for obs in cnet.observations():
        blocks = [storage.get_point_block(obs.point_index),
                  storage.get_camera_block(obs.camera_index)]
        problem.add_residual_block(ReprojectionError.from_observation(obs, adapter),
                                   get_loss_function('cauchy', 0.5), blocks)

    result = LeastSquaresSolver().optimize(problem)
"""

# Camera adapters
from .camera_adapters import (
    CameraVariant,
    CameraAdapter,
    AdjustedCameraAdapter,
    PinholeCameraAdapter,
    OpticalBarCameraAdapter,
    CsmCameraAdapter,
    apply_intrinsic_factors,
    create_camera_adapter,
    register_camera_adapter
)

# Cost functions
from .cost_functions import (
    CostFunction,
    ReprojectionError,
    DispXyzError,
    CamError,
    RotTransError,
    CamUncertaintyError,
    LLHError,
    XYZError
)

from .loss_functions import (
    LossFunction,
    RobustLoss,
    TrivialLoss,
    HuberLoss,
    CauchyLoss,
    SoftLOneLoss,
    ArctanLoss,
    get_loss_function
)

from .numeric_diff import NumericDiffMethod, numeric_jacobians

# Problem assembly and solving
from .problem import Problem, ResidualBlock
from .ground_constraints import GroundConstraintStats, add_gcp_or_dem_constraint
from .camera_constraints import add_camera_constraints
from .solver import LeastSquaresSolver, LeastSquaresSolverConfig


__all__ = [
    # Camera adapters
    'CameraVariant',
    'CameraAdapter',
    'AdjustedCameraAdapter',
    'PinholeCameraAdapter',
    'OpticalBarCameraAdapter',
    'CsmCameraAdapter',
    'apply_intrinsic_factors',
    'create_camera_adapter',
    'register_camera_adapter',

    # Cost functions
    'CostFunction',
    'ReprojectionError',
    'DispXyzError',
    'CamError',
    'RotTransError',
    'CamUncertaintyError',
    'LLHError',
    'XYZError',

    # Loss functions
    'LossFunction',
    'RobustLoss',
    'TrivialLoss',
    'HuberLoss',
    'CauchyLoss',
    'SoftLOneLoss',
    'ArctanLoss',
    'get_loss_function',

    # Differentiation
    'NumericDiffMethod',
    'numeric_jacobians',

    # Problem
    'Problem',
    'ResidualBlock',
    'GroundConstraintStats',
    'add_gcp_or_dem_constraint',
    'add_camera_constraints',
    'LeastSquaresSolver',
    'LeastSquaresSolverConfig',
]
