"""
SensorBundleAdjustment

Bundle adjustment building blocks for heterogeneous camera sensor models:
camera adapters exposing uniform parameter blocks, residual functions and
problem assembly for a least-squares solver.
"""

from SensorBundleAdjustment.config import BundleAdjustConfig
from SensorBundleAdjustment.logger import get_logger, setup_logger, configure_root_logger


__all__ = [
    'BundleAdjustConfig',
    'get_logger',
    'setup_logger',
    'configure_root_logger',
]


__version__ = '1.0.0'
