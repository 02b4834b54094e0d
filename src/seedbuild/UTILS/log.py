"""
Logging setup for the command line tool.
"""
import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def init_logging(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configures the package logger: console output at INFO (DEBUG when verbose),
    plus a full DEBUG trace in log_file when one is given.
    """
    logger = logging.getLogger("seedbuild")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        fh = logging.FileHandler(log_file)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    return logger
