"""
Logging setup.

WHY: Every module logs through ``logging.getLogger(__name__)``. This sets
the root level and format once at application start so scan summaries and
per-ticket errors end up in the same stream.
"""

import logging
from typing import Optional

from app.core.config import settings


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging for the application.

    Args:
        level: Log level name (defaults to settings.LOG_LEVEL)
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )

    # WHY: APScheduler logs every job execution at INFO, which drowns out
    # the scan summaries when the job runs every minute.
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
