"""
Logging setup for the PS-LANG API.

Every module logs through get_logger(__name__). Log lines pass through a
formatter that redacts bearer tokens, API keys and email addresses, so a
stray upstream payload or header never reaches the log sink verbatim.
"""

from __future__ import annotations

import logging
import os
from typing import Final

_HANDLER_ATTACHED: bool = False
_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"


class RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        # error_sanitizer logs through this module
        from pslang.utils.error_sanitizer import redact

        return redact(super().format(record))


def _resolve_level() -> int:
    level_name = os.getenv("PSLANG_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Module logger; the first call attaches the redacting stream handler to the root."""
    global _HANDLER_ATTACHED

    level = _resolve_level()

    if not _HANDLER_ATTACHED:
        handler = logging.StreamHandler()
        handler.setFormatter(RedactingFormatter(_FORMAT, datefmt=_DATE_FORMAT))
        root = logging.getLogger()
        root.addHandler(handler)
        root.setLevel(level)
        _HANDLER_ATTACHED = True

    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger
