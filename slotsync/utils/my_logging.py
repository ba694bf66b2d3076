# slotsync/utils/my_logging.py
"""Logging configuration"""
import logging
import sys
from slotsync.config.settings import get_settings


def setup_logging(verbose=True):
    """Configure application logging"""
    settings = get_settings()

    if verbose:
        level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # The engine's own loggers follow LOG_LEVEL even when the rest is quiet
    logging.getLogger("slotsync").setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    if not verbose:
        # Silence noisy loggers
        noisy_loggers = [
            "sqlalchemy",
            "sqlalchemy.engine",
            "sqlalchemy.pool",
            "alembic",
            "googleapiclient",
            "googleapiclient.discovery",
            "google.auth",
            "urllib3",
            "uvicorn.access",
        ]
        for name in noisy_loggers:
            logger = logging.getLogger(name)
            logger.setLevel(logging.ERROR)
            logger.propagate = False
