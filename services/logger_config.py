# services/logger_config.py
import logging
import os
from logging.handlers import RotatingFileHandler

from config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'


def setup_logging(level: int = logging.INFO, log_to_file: bool = True):
    """
    Configure the application logger.

    Records go to a rotating file (5MB x 5) and to the console. Safe to call
    more than once: existing handlers are replaced.
    """
    logger = logging.getLogger(settings.LOGGER_NAME)

    # Avoid adding duplicate handlers if this function is called multiple times
    if logger.hasHandlers():
        logger.handlers.clear()

    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if log_to_file:
        try:
            log_dir = os.path.dirname(settings.LOG_FILE_PATH)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                settings.LOG_FILE_PATH,
                maxBytes=5 * 1024 * 1024,  # 5MB
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            file_handler.setLevel(logging.DEBUG)
            logger.addHandler(file_handler)
        except OSError as e:
            print(f"Error setting up file logger: {e}")

    logger.propagate = True

    # Console Handler: For immediate feedback during development.
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    logger.info("Logging configured successfully.")
    return logger
