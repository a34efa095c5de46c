"""Central logging setup for the project."""
from __future__ import annotations
import logging
import os
import sys

def setup_logging(level: int | str | None = None) -> None:
    """
    Configure root logger for servers and command line tools.

    Args:
        level: Logging level or level name. Falls back to LOG_LEVEL, then INFO.
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    fmt = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
    handler.setFormatter(logging.Formatter(fmt))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
