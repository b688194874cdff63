"""
Optimization Module

Submodules:
- bundle_adjustment: camera adapters, residuals and least-squares problem
"""

from .bundle_adjustment import (
    Problem,
    LeastSquaresSolver,
    create_camera_adapter,
    add_gcp_or_dem_constraint
)


__all__ = [
    'Problem',
    'LeastSquaresSolver',
    'create_camera_adapter',
    'add_gcp_or_dem_constraint',
]
