"""Logging setup shared by the HTTP entry point and scripts."""

from __future__ import annotations

import logging
import os
from typing import Optional, Union

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s | %(message)s"
LOG_LEVEL_ENV = "GEOSTAMP_LOG_LEVEL"

_configured = False


def _resolve_level(level: Optional[Union[int, str]]) -> int:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Optional[Union[int, str]] = None) -> None:
    """Install the default handler once; later calls only adjust the level."""
    global _configured
    resolved = _resolve_level(level)
    root = logging.getLogger()
    if not _configured and not root.handlers:
        logging.basicConfig(level=resolved, format=DEFAULT_LOG_FORMAT)
    else:
        root.setLevel(resolved)
    _configured = True
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(resolved, logging.INFO))
