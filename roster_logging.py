# roster_logging.py
import logging
import sys

from roster_config import LOG_LEVEL

logger = logging.getLogger("roster")
logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

# Prevent duplicate handlers if imported multiple times (streamlit reruns)
if not logger.handlers:
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_formatter = logging.Formatter("[%(levelname)s] %(name)s - %(message)s")
    stream_handler.setFormatter(stream_formatter)
    logger.addHandler(stream_handler)


def get_logger(name: str) -> logging.Logger:
    """Return a child of the roster logger, e.g. ``roster.scheduler``."""
    return logger.getChild(name)
