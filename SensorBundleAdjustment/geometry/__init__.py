"""
Geometry module: datum, camera models and disparity sampling.
"""

from .datum import Datum, KNOWN_DATUMS
from .disparity import InterpolatedDisparity
from .cameras import (
    PinholeCamera,
    OpticalBarCamera,
    LinescanCamera,
    AdjustedCamera
)


__all__ = [
    'Datum',
    'KNOWN_DATUMS',
    'InterpolatedDisparity',
    'PinholeCamera',
    'OpticalBarCamera',
    'LinescanCamera',
    'AdjustedCamera',
]
