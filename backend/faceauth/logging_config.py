"""
Logging setup for applications embedding faceauth
"""
import logging
from typing import Optional

from .config import config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(log_level: Optional[str] = None) -> logging.Logger:
    """
    Install a console handler on the ``faceauth`` logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL. Defaults to
            ``Config.LOG_LEVEL``.

    Returns:
        The configured ``faceauth`` logger
    """
    level = getattr(logging, (log_level or config.LOG_LEVEL).upper(), logging.INFO)

    logger = logging.getLogger('faceauth')
    logger.setLevel(level)

    # Replace handlers from an earlier call instead of stacking them
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    return logger
