"""
Core interfaces.

Abstract contracts shared by the camera models and the solver adapter.
"""

from .base_camera import CameraModel

from .base_optimizer import (
    BaseOptimizer,
    OptimizationResult,
    OptimizationStatus
)


__all__ = [
    'CameraModel',
    'BaseOptimizer',
    'OptimizationResult',
    'OptimizationStatus',
]
