"""Logging setup for the web app and the management commands."""

import logging

from .config import LOG_LEVEL

FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    root = logging.getLogger()
    # no-op if something (uvicorn, pytest) already installed handlers
    if root.handlers:
        root.setLevel(level)
        return
    logging.basicConfig(level=level, format=FORMAT)
