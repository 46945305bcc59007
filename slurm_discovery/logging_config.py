"""Log formatting for discovery runs, JSON for machines and text for terminals."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

from .config import LoggingConfig

# Attributes callers attach via ``extra=``; emitted only when set
STRUCTURED_FIELDS = ("probe", "source", "endpoint", "clusters", "elapsed_seconds")

QUIET_LOGGERS = ("urllib3", "requests", "dns")


def _structured(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in STRUCTURED_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Probes run on worker threads, so the thread name is always included to
    tell interleaved probe output apart.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        payload.update(_structured(record))
        if record.exc_info and record.exc_info[1]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """``time level [logger] message key=value ...`` for interactive use."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _structured(record)
        if not extras:
            return line
        head, sep, tail = line.partition("\n")
        fields = " ".join(f"{key}={value}" for key, value in extras.items())
        return f"{head} {fields}{sep}{tail}"


def configure_logging(config: LoggingConfig, stream: IO[str] | None = None) -> None:
    """Install a single root handler writing to *stream* (stderr by default).

    stdout is left alone so the discovery result can be piped.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JSONFormatter() if config.format == "json" else TextFormatter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
