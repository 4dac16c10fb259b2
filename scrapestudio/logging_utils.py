"""JSON event logging for the scrapestudio package."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
PACKAGE_LOGGER = "scrapestudio"


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Log `event` and its fields as a single JSON object, skipping disabled levels."""
    if not logger.isEnabledFor(level):
        return
    # event always leads; remaining fields are sorted for stable output
    body = json.dumps(fields, default=str, sort_keys=True, ensure_ascii=False)
    prefix = json.dumps({"event": event}, ensure_ascii=False)[:-1]
    logger.log(level, prefix + (", " + body[1:] if fields else "}"))


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a stderr handler to the package logger once and set its level."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    return logger
