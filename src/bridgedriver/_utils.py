"""Small helpers shared by the driver and the CLI."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Optional, Union

LOG_FORMAT = "[bridge][%(name)s][%(levelname)s] %(message)s"


def setup_logging(
    level: Union[str, int] = logging.WARNING, log_file: Optional[str] = None
) -> logging.Logger:
    """Route package logs to stderr, or to ``log_file`` when given.

    stdout carries command output (parsed by agents in --json mode), so
    the handler must never write there.

    :param level: Level name or number for the ``bridgedriver`` logger.
    :param log_file: Append logs to this file instead of stderr.
    :return: The configured package logger.
    """
    logger = logging.getLogger("bridgedriver")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logger.setLevel(level)
    if not logger.handlers:
        if log_file:
            handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
        else:
            handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger


def is_json_serializable(obj: Any) -> bool:
    """Check if the object is JSON serializable.

    :param obj: The object to check.
    :return: True if the object is JSON serializable, False otherwise.
    """
    try:
        json.dumps(obj)
        return True
    except TypeError:
        return False


def parse_json_arg(raw: Any) -> Any:
    """Decode a JSON argument coming from the command line.

    Non-string values are returned unchanged; strings that are not JSON
    are returned as plain strings.
    """
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw
