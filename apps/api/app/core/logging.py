from __future__ import annotations

import logging

from app.core.config import get_settings

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_configured = False


def configure_logging() -> None:
    global _configured
    if _configured:
        return
    settings = get_settings()
    level = logging.getLevelName(settings.log_level.strip().upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # The neo4j driver is chatty at INFO about routing tables and notifications.
    logging.getLogger("neo4j").setLevel(max(level, logging.WARNING))
    _configured = True
