"""
Core module: exceptions, interfaces and data structures.
"""

from .exceptions import (
    BundleAdjustmentError,
    ProjectionFailure,
    ConfigurationError,
    InputInvariantViolation
)


__all__ = [
    'BundleAdjustmentError',
    'ProjectionFailure',
    'ConfigurationError',
    'InputInvariantViolation',
]
