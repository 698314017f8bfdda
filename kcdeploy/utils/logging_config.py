import logging
import logging.handlers
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_to_file: bool = False, log_file_path: str = "kcdeploy.log", log_level: str = "INFO") -> None:
    """
    Configure logging to output to stdout and optionally to a file.

    Args:
        log_to_file: Whether to enable file logging alongside stdout
        log_file_path: Path to log file when file logging is enabled
        log_level: Level for the kcdeploy loggers (external packages stay at INFO)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    # Keep third-party libraries quiet, httpx logs every request at INFO
    root_logger.setLevel(logging.INFO)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    kcdeploy_logger = logging.getLogger("kcdeploy")
    kcdeploy_logger.setLevel(log_level.upper())

    stdout_handler = logging.StreamHandler()
    stdout_handler.setLevel(logging.DEBUG)
    stdout_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(stdout_handler)

    if log_to_file:
        try:
            log_path = Path(log_file_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            # max 10MB, keep 5 files
            file_handler = logging.handlers.RotatingFileHandler(
                log_file_path,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root_logger.addHandler(file_handler)

            logging.getLogger(__name__).debug(f"File logging enabled: {log_file_path}")

        except OSError as e:
            logging.getLogger(__name__).exception(f"Failed to setup file logging to {log_file_path}: {e}")
            logging.getLogger(__name__).info("Continuing with stdout logging only")
