import logging
import os
from datetime import datetime

from config import LOG_DIR, LOG_LEVEL


def get_logger(name: str, log_level=None) -> logging.Logger:
    """
    Creates and returns a logger instance with a console handler and, when LOG_DIR
    is set, a daily file handler.

    Args:
        name (str): The name of the logger, __name__.
        log_level (int | str): Logging level, defaults to LOG_LEVEL from config.

    Returns:
        logging.Logger: Configured logger instance.
    """

    # create a logger
    logger = logging.getLogger(name)
    logger.setLevel(log_level or LOG_LEVEL)

    # prevent duplicating of logging
    if not logger.handlers:

        # Create formatter
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

        # Console Handler
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        # File Handler, one file per day of partition maintenance
        if LOG_DIR:
            os.makedirs(LOG_DIR, exist_ok=True)
            log_filename = os.path.join(
                LOG_DIR, f"partitioner-{datetime.now().strftime('%Y-%m-%d')}.log"
            )
            file_handler = logging.FileHandler(log_filename)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
