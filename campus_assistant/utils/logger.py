"""Process-wide logging setup for the campus assistant."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from campus_assistant.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Connection-pool chatter from the language model transport.
QUIET_LOGGERS = ("urllib3", "requests")

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install the stdout handler once; later calls are no-ops.

    Messages carry pipe-delimited ``key=value`` pairs, e.g.
    ``Booking created | booking_id=3 | room_id=1``.
    """
    global _configured
    if _configured:
        return

    resolved_level = (level or get_settings().log_level).upper()
    logging.basicConfig(level=resolved_level, format=LOG_FORMAT, stream=sys.stdout)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
