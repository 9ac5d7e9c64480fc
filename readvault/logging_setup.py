"""Process-wide logging configuration for the CLI and API entry points."""

from __future__ import annotations

import logging

from readvault.config import settings

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install the root handler once; library modules only call ``getLogger``."""
    name = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format=LOG_FORMAT,
    )
    # httpx logs one INFO line per request.
    logging.getLogger("httpx").setLevel(logging.WARNING)
