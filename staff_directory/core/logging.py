"""
Logging setup for the staff directory service.

Call ``setup_logging()`` once at startup, then use module loggers::

    logger = logging.getLogger(__name__)
    logger.info("[SECURITY] Account locked: %s", user.id_card)
"""

import logging
import sys

from staff_directory.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Chatty third-party loggers kept at WARNING.
QUIET_LOGGERS = ("sqlalchemy.engine", "passlib", "httpx")


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger. Safe to call more than once."""
    level_name = (level or settings.LOG_LEVEL).upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if not any(getattr(h, "_staff_directory", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._staff_directory = True
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
