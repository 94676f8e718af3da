"""
Logging setup for the publish CLI.

Two output styles share one redaction step:
- JsonFormatter: one orjson-encoded object per line, for CI log collectors
- SimpleFormatter: ``LEVEL logger: message | key=value`` for terminals

Redaction covers storage account keys in assignment or connection-string
form, SharedKey authorization values and SAS query strings that can show
up inside SDK error text.
"""

from __future__ import annotations

import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

import orjson

_REDACTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    # Query strings may carry SAS signatures
    (re.compile(r"(https?://[^\s?\"'<>]+)\?[^\s\"'<>]*"), r"\1"),
    (re.compile(r"\bSharedKey(?:Lite)?\s+[\w\-]+:[A-Za-z0-9+/=]+"), "SharedKey [REDACTED]"),
    (re.compile(r"\bAccountKey=[A-Za-z0-9+/=]+", re.I), "AccountKey=[REDACTED]"),
    (re.compile(r"\bsig=[\w%+/=\-]+", re.I), "sig=[REDACTED]"),
    (
        re.compile(r"\b(access_key|account_key)(['\"]?\s*[=:]\s*['\"]?)[A-Za-z0-9+/=]+", re.I),
        r"\1\2[REDACTED]",
    ),
)

# Substrings of extra= keys that are dropped from output
BLOCKED_FIELDS: frozenset[str] = frozenset(
    {"access_key", "account_key", "authorization", "credential", "password", "secret"}
)

# extra= keys whose values are replaced by a placeholder
REDACTED_FIELDS: frozenset[str] = frozenset({"body", "data", "headers"})

# Attributes set on every LogRecord; anything else came from extra=
_STANDARD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def redact(text: str) -> str:
    """Strip credentials and query strings from free-form text."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Fields passed through ``extra=``, filtered for output."""
    fields: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_ATTRS:
            continue
        lowered = key.lower()
        if any(blocked in lowered for blocked in BLOCKED_FIELDS):
            continue
        if lowered in REDACTED_FIELDS:
            fields[key] = "[REDACTED]"
        elif value is None or isinstance(value, (bool, int, float)):
            fields[key] = value
        else:
            fields[key] = redact(str(value))
    return fields


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg, then extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": redact(record.getMessage()),
        }
        if record.exc_info:
            entry["exc"] = redact(self.formatException(record.exc_info))
        entry.update(record_fields(record))
        return orjson.dumps(entry, default=str).decode()


class SimpleFormatter(logging.Formatter):
    """Human-readable single-line formatter."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname:8s} {record.name}: {redact(record.getMessage())}"
        fields = record_fields(record)
        if fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + redact(self.formatException(record.exc_info))
        return line


def setup_logging(
    *,
    level: int | str = logging.INFO,
    json_format: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Install a single stderr (or ``stream``) handler on the root logger.

    Args:
        level: Root log level.
        json_format: JsonFormatter when True, SimpleFormatter otherwise.
        stream: Output stream (default stderr).
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else SimpleFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # The SDK logs every request at INFO
    for name in ("azure", "aiohttp", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)
