"""
Early logging initialization module.

Sets up logging before the settings are loaded, so that messages emitted while
locating and reading env files are not lost. It is imported first by
kcdeploy.core.config.
"""

import logging
import os

from kcdeploy.utils.logging_config import setup_logging


def initialize_logging() -> None:
    """
    Initialize logging from plain environment variables.

    The full settings object is not available yet, so only LOG_TO_FILE,
    LOG_FILE_PATH and LOG_LEVEL are read here.
    """
    log_to_file = os.environ.get("LOG_TO_FILE", "false").lower() == "true"
    log_file_path = os.environ.get("LOG_FILE_PATH", "kcdeploy.log")
    log_level = os.environ.get("LOG_LEVEL", "INFO")

    setup_logging(log_to_file=log_to_file, log_file_path=log_file_path, log_level=log_level)

    logger = logging.getLogger(__name__)
    logger.debug("Early logging initialized successfully")


initialize_logging()
