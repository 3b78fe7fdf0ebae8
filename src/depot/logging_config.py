"""Logging setup for Depot."""

import logging
import sys
from typing import Optional


LOG_FORMAT = "%(asctime)s - %(name)s - [%(levelname)s] - %(message)s"

# Download and upload events, also written to the optional log file
access_logger = logging.getLogger("depot.access")


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure the root logger.

    Call once at startup. ``log_file`` adds an append-only file handler;
    rotating it is left to the host (logrotate and friends).
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # Silence noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)
