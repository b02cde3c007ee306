from __future__ import annotations

import logging
import sys
from typing import TextIO

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_HANDLER_NAME = "agentpulse-console"


def setup_logging(level: str = "INFO", stream: TextIO | None = None) -> logging.Logger:
    """Attach a console handler to the ``agentpulse`` logger.

    Status events go to stdout, so diagnostics default to stderr. Calling
    this again only changes the level and stream; handlers never pile up.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    package_logger = logging.getLogger("agentpulse")
    package_logger.setLevel(numeric_level)

    for handler in package_logger.handlers:
        if handler.get_name() == _HANDLER_NAME and isinstance(handler, logging.StreamHandler):
            handler.setStream(stream or sys.stderr)
            return package_logger

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    package_logger.addHandler(handler)

    # watchfiles reports every change batch at INFO
    logging.getLogger("watchfiles").setLevel(logging.WARNING)
    return package_logger
