"""Log setup for the CLI.

Every handler writes to stderr so that ``find`` output on stdout stays pure
CSV. Two renderings are available: a one-line text format for people and a
JSON format (``--json-logs``) that carries trace ids plus the command and
index path bound by the CLI.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
import sys
from typing import Any

import orjson

from csv_indexer.observability.context import get_trace_context


TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_STANDARD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}
_CONTEXT_KEYS = ("command", "index")


def _to_json(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (set, frozenset)):
        try:
            return sorted(value)
        except TypeError:
            return list(value)
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return repr(value) if not isinstance(value, Exception) else str(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, correlated with the active span."""

    REDACT_KEYS = frozenset({"password", "token", "api_key", "secret", "authorization"})
    MAX_MESSAGE_LEN = 2000
    MAX_VALUE_LEN = 500

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_trace_context()
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._clip(record.getMessage(), self.MAX_MESSAGE_LEN),
            "trace_id": ctx.get("trace_id", ""),
            "span_id": ctx.get("span_id", ""),
        }
        # csv_indexer.search.engine -> engine
        if "." in record.name:
            entry["component"] = record.name.rsplit(".", 1)[-1]
        for key in _CONTEXT_KEYS:
            if ctx.get(key):
                entry[key] = ctx[key]
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            if key.lower() in self.REDACT_KEYS:
                entry[key] = "[REDACTED]"
            elif isinstance(value, str):
                entry[key] = self._clip(value, self.MAX_VALUE_LEN)
            else:
                entry[key] = value

        return orjson.dumps(entry, default=_to_json).decode("utf-8")

    @staticmethod
    def _clip(text: str, limit: int) -> str:
        return text if len(text) <= limit else text[:limit] + "..."


def configure_logging(
    level: str = "WARNING",
    json_output: bool = False,
    *,
    logger_levels: dict[str, str] | None = None,
    stream: Any = None,
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Root log level name, case-insensitive
        json_output: Render records with ``JsonFormatter``
        logger_levels: Per-logger overrides, e.g. ``{"csv_indexer.search": "debug"}``
        stream: Write here instead of stderr (tests)
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)

    for name, name_level in (logger_levels or {}).items():
        logging.getLogger(name).setLevel(getattr(logging, name_level.upper(), logging.INFO))
