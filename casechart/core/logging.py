"""Logging setup for embedding applications and scripts."""

import logging

from casechart.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger.

    Handlers are installed once; later calls only change the level.

    Args:
        level: Log level name; defaults to the configured settings level.
    """
    global _configured
    resolved = (level or settings.effective_log_level).upper()
    if not _configured:
        logging.basicConfig(format=LOG_FORMAT)
        _configured = True
    logging.getLogger().setLevel(resolved)
