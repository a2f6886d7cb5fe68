"""Root logger setup for SubTracker."""
import logging
import sys
from typing import Optional

from .config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that log every request at INFO.
QUIET_LOGGERS = ("httpx", "uvicorn.access")


def setup_logging(level: Optional[str] = None) -> None:
    """Send application logs to stdout.

    ``level`` falls back to ``settings.LOG_LEVEL``. The engine and manager
    log under the ``subtracker`` namespace, which always follows ``level``
    even when the root logger was configured by someone else first.
    """
    log_level = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stdout,
    )
    logging.getLogger("subtracker").setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLevelName(log_level)))
