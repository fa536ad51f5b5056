"""
Logging setup.
"""

import logging

from taskboard.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once, at application start."""
    logging.basicConfig(level=level or settings.LOG_LEVEL, format=LOG_FORMAT)
    # SQL echo is controlled by DATABASE_ECHO, not LOG_LEVEL.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
