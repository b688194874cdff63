"""
Exceptions raised by the bundle adjustment cost layer.

Evaluation-time failures (ProjectionFailure) are reported per call to the
solver. Construction-time failures (ConfigurationError,
InputInvariantViolation) abort problem assembly before any solving begins.
"""


class BundleAdjustmentError(Exception):
    """Base class for all bundle adjustment errors"""


class ProjectionFailure(BundleAdjustmentError, ValueError):
    """A 3D point does not project into a camera.

    Raised when the point is behind the camera or the sensor model's
    ground-to-image solve is undefined for the given geometry.
    """


class ConfigurationError(BundleAdjustmentError, ValueError):
    """Invalid configuration: unknown loss name, bad camera block layout, etc."""


class InputInvariantViolation(BundleAdjustmentError, ValueError):
    """Parameter blocks passed to a residual do not match its declared layout"""
