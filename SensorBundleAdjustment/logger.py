"""
Logging utility for SensorBundleAdjustment

Every module logs through a child of the "SensorBundleAdjustment" logger
(e.g. "SensorBundleAdjustment.solver"). A driver configures that one logger
once; problem assembly and the solver only ever call get_logger().
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from SensorBundleAdjustment.core.exceptions import ConfigurationError


ROOT_LOGGER_NAME = "SensorBundleAdjustment"

# [2026-03-02 10:15:30] [INFO] [SensorBundleAdjustment.solver] Message
LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ConfigurationError(f"Unknown logging level: {level}")
    return value


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Union[str, int] = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    force: bool = False
) -> logging.Logger:
    """
    Setup logger with file and/or console output

    Args:
        name: Logger name
        level: Logging level name (DEBUG, INFO, ...) or number
        log_file: Optional path to log file, appended to
        console: Whether to output to stdout
        force: Replace handlers of an already configured logger

    Returns:
        Configured logger

    Raises:
        ConfigurationError: Unknown level name

    Example:
        >>> logger = setup_logger(level='DEBUG', log_file='run/bundle_adjust.log')
        >>> logger.info("Solving for 12 cameras")
    """
    logger = logging.getLogger(name)

    if logger.handlers and not force:
        return logger

    logger.setLevel(_resolve_level(level))
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode='a')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Logger for one module, e.g. get_logger("bundle_adjustment.solver")
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_root_logger(level: Union[str, int] = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    (Re)configure the SensorBundleAdjustment logger with console output.

    Called once by the driver before assembling the problem.
    """
    return setup_logger(
        name=ROOT_LOGGER_NAME,
        level=level,
        log_file=log_file,
        console=True,
        force=True
    )
