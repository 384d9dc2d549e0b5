"""Logging setup for the API process."""

import logging
from typing import Optional

from boatcare.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Initialize root logging with the shared format.

    The level comes from the argument or from ``LOG_LEVEL`` (via settings).
    Calling it again only adjusts the level.
    """
    resolved = (level or get_settings().log_level or "INFO").upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)
    root.setLevel(resolved)
