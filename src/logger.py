from __future__ import annotations

import logging
import os

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
_FORMAT = "[%(asctime)s] [%(name)s] %(levelname)s %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a process logger writing to stderr; handlers are attached once."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logger.setLevel(level)
    stream = logging.StreamHandler()
    stream.setLevel(level)
    stream.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(stream)
    logger.propagate = False
    return logger
