"""Logging setup for processes embedding sessionport."""

from __future__ import annotations

import logging
from typing import Optional

from sessionport.config import SessionSettings, get_settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(settings: Optional[SessionSettings] = None) -> None:
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("sessionport").setLevel(level)
