"""Logging setup for the API process."""

import logging

from core.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging() -> None:
    """Configure the root logger once; later calls are no-ops."""
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    # Motor/pymongo heartbeat chatter
    logging.getLogger("pymongo").setLevel(logging.WARNING)
