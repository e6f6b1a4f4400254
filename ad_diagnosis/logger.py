"""
Logging configuration
"""
import sys

from loguru import logger


def setup_logger(level: str = "WARNING"):
    """Configure logger for CLI use.

    Logs go to stderr so stdout stays pure JSON.
    """
    logger.remove()  # Remove default handler
    logger.enable("ad_diagnosis")

    logger.add(
        sys.stderr,
        colorize=False,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
        level=level.upper(),
    )

    return logger
