"""Console logging setup shared by the app and the lifecycle manager."""

from __future__ import annotations

import logging
import sys

from uvicorn.logging import DefaultFormatter


VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")

LOG_FORMAT = "%(asctime)s %(levelprefix)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int) -> None:
    """Route all loggers through one timestamped console handler."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(DefaultFormatter(LOG_FORMAT, datefmt=DATE_FORMAT, use_colors=sys.stderr.isatty()))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
