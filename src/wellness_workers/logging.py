"""Structured logging for the wellness workers.

WELLNESS_LOG_FORMAT picks "json" (default) or "text"; WELLNESS_LOG_LEVEL
takes a level name. Context travels as ``wellness_*`` extras (client id,
pillar, job type, error code) and both formats render them.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

EXTRA_PREFIX = "wellness_"

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def wellness_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k.startswith(EXTRA_PREFIX)}


def error_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Taxonomy of the logged exception, when it carries one (see errors.py)."""
    if not record.exc_info or record.exc_info[1] is None:
        return {}
    exc = record.exc_info[1]
    fields: dict[str, Any] = {"error_type": type(exc).__name__}
    for attr, key in (("error_class", "error_class"), ("code", "error_code"), ("field", "error_field")):
        value = getattr(exc, attr, None)
        if value is not None:
            fields[key] = value
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = "".join(traceback.format_exception(*record.exc_info))
        entry.update(error_fields(record))
        entry.update(wellness_extras(record))
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Plain lines with ``wellness_*`` extras appended as key=value pairs."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = wellness_extras(record)
        if not extras:
            return line
        context = " ".join(f"{k[len(EXTRA_PREFIX):]}={v}" for k, v in sorted(extras.items()))
        head, sep, rest = line.partition("\n")
        return f"{head} [{context}]{sep}{rest}"


def resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelNamesMapping().get(level.strip().upper())
    if resolved is None:
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(log_format: str, level: int | str = logging.INFO) -> None:
    """Install a single stderr handler on the root logger."""
    level = resolve_level(level)
    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if log_format == "json" else TextFormatter())
    root.addHandler(handler)
