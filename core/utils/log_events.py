"""Compact JSON event logging shared by api, pipeline and fillers."""

from __future__ import annotations

import json
import logging
from typing import Any


def dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Emit one JSON object per line: {"event": ..., **fields}."""

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, dump_json(payload))
