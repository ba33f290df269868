"""
logging_config.py — Centralized Logging Configuration for the Order Service

Configures unified logging for the whole application so every module logs
to both console and file in the same format.

Features:
    • Combined console and file logging output
    • Process ID tagging for multi-process visibility
    • Reduced verbosity for client libraries (pika, httpx)
"""

import logging
import sys
from typing import Optional

from .config import settings


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None):
    """
    Configures the global logging system for the application.

    Args:
        level (str): Log level name, defaults to `settings.log_level`.
        log_file (str): Path of the persistent log file, defaults to `settings.log_file`.
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=log_format,
        handlers=[
            logging.FileHandler(log_file or settings.log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    logging.getLogger("pika").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a logger for the given module name (typically `__name__`).
    """
    return logging.getLogger(name)
