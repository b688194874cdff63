"""
Camera models.
"""

from .pinhole import PinholeCamera
from .optical_bar import OpticalBarCamera
from .linescan import LinescanCamera
from .adjusted import AdjustedCamera


__all__ = [
    'PinholeCamera',
    'OpticalBarCamera',
    'LinescanCamera',
    'AdjustedCamera',
]
