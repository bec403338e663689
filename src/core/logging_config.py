"""Logging setup for the EduSpace service."""

import logging

from config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging once for the whole process.

    Args:
        level: Log level name, e.g. "INFO" or "DEBUG".
    """
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # Keep uvicorn output in the same format and level as ours
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.setLevel(level)
    # SQL echo is far too chatty for INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
