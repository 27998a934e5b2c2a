"""
Logging Configuration
Sets up the package logger for the calculator engine.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

from calculatorcore.config import LOG_BACKUP_COUNT, LOG_MAX_BYTES


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configures the 'calculatorcore' logger.

    The engine is long-lived and logs every evaluation, so the optional
    file is size-capped and rotated.

    Args:
        level: Logging level, as a number or a name ('DEBUG', 'info').
        log_file: Optional path to save logs to a file.
    """
    if isinstance(level, str):
        name = level.upper()
        if name not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {level!r}")
        level = logging.getLevelNamesMapping()[name]

    logger = logging.getLogger("calculatorcore")
    logger.setLevel(level)

    # Re-initialisation must not stack handlers
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug(f"Logging initialized at {logging.getLevelName(level)}.")
