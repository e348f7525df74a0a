from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited docstring
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.__dict__.get("tx_hash"):
            payload["tx_hash"] = record.__dict__["tx_hash"]
        if record.__dict__.get("context"):
            payload["context"] = record.__dict__["context"]
        return json.dumps(payload, default=str)


def configure_logging(
    log_level: str = "INFO",
    *,
    json_output: bool = False,
    log_dir: Optional[str] = None,
) -> None:
    """Configure console logging and, optionally, a rotating log file.

    Parameters
    ----------
    log_level:
        Logging level name (case insensitive).
    json_output:
        Emit one JSON object per record, carrying ``tx_hash`` and ``context`` extras.
    log_dir:
        Directory for ``raffle_deploy.log``; no file handler when omitted.
    """

    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter: logging.Formatter = JsonFormatter() if json_output else logging.Formatter(_PLAIN_FORMAT)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            os.path.join(log_dir, "raffle_deploy.log"), maxBytes=5_000_000, backupCount=5
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)


__all__ = ["JsonFormatter", "configure_logging"]
