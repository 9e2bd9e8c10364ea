from __future__ import annotations

import json
import logging

from app.depot.core.config import settings


def configure_logging() -> None:
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger("depot").setLevel(level)


def log_json(logger: logging.Logger, payload: dict, *, level: int = logging.INFO) -> None:
    """Emit one JSON object per line; UUIDs, dates and Decimals fall back to str()."""
    if not logger.isEnabledFor(level):
        return
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
