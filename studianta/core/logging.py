"""
Studianta - Logging Setup
Single stream handler for the stdlib logging tree.
"""
import logging
import sys

from studianta.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure the root logger once.

    Safe to call repeatedly: an existing handler installed by us is reused.
    """
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    for handler in root.handlers:
        if getattr(handler, "_studianta", False):
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._studianta = True
    root.addHandler(handler)

    # SQL echo is controlled by DEBUG on the engine itself
    logging.getLogger("httpx").setLevel(logging.WARNING)
