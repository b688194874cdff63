"""
Tests for logger configuration.
"""

import logging

import pytest

from SensorBundleAdjustment.core.exceptions import ConfigurationError
from SensorBundleAdjustment.logger import ROOT_LOGGER_NAME, get_logger, setup_logger


@pytest.fixture
def logger_name():
    name = f"{ROOT_LOGGER_NAME}.test_logger"
    yield name
    logger = logging.getLogger(name)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()


def test_module_loggers_are_children():
    assert get_logger("bundle_adjustment.solver").name == f"{ROOT_LOGGER_NAME}.bundle_adjustment.solver"


def test_log_file_receives_messages(tmp_path, logger_name):
    log_file = tmp_path / "logs" / "ba.log"
    logger = setup_logger(logger_name, level="debug", log_file=str(log_file), console=False)

    logger.debug("12 residual blocks")
    for handler in logger.handlers:
        handler.flush()

    text = log_file.read_text()
    assert "[DEBUG]" in text
    assert "12 residual blocks" in text


def test_existing_configuration_is_kept(logger_name):
    first = setup_logger(logger_name, level="INFO")
    handlers = list(first.handlers)

    again = setup_logger(logger_name, level="DEBUG")
    assert again.handlers == handlers
    assert again.level == logging.INFO

    forced = setup_logger(logger_name, level="DEBUG", force=True)
    assert len(forced.handlers) == 1
    assert forced.level == logging.DEBUG


def test_unknown_level(logger_name):
    with pytest.raises(ConfigurationError):
        setup_logger(logger_name, level="chatty")
