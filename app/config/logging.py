"""
Logging setup shared by the API process and the sweep scheduler
"""
import logging
import sys

from app.config.settings import settings


def setup_logging() -> None:
    """Configure the root logger once, at application startup."""
    logging.basicConfig(
        format="[%(asctime)s] %(levelname)s in %(name)s:%(lineno)d: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        level=settings.LOG_LEVEL,
    )

    # Driver heartbeats are noisy at DEBUG
    for noisy_logger in ["pymongo", "motor", "uvicorn.access"]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)
