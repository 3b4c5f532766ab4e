"""
flow_ix.logging
---------------

Structured logging on top of the standard `logging` module.

- Context fields (trace_id, stage, node, ...) live in a `ContextVar`, so each
  asyncio task and each pipeline run sees its own values.
- `ContextFilter` copies the active context onto every record; the JSON and
  text formatters render it next to the record's `extra=` fields.

Usage
-----
    from flow_ix import logging as ixlog

    ixlog.configure(json=False, level="DEBUG")  # once, by the application
    log = ixlog.get_logger(__name__)

    with ixlog.trace_scope():
        ixlog.bind(stage="accounts")
        log.info("resolving", extra={"declarations": 3})

The library never installs handlers on import; `configure` is for applications
(the CLI calls it).
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, TextIO, Union

_ROOT = "flow_ix"

_context: ContextVar[Dict[str, Any]] = ContextVar("flow_ix_log_context", default={})

# Rendered first, in this order, by the text formatter.
_TEXT_KEYS = ("trace_id", "stage", "node", "status")

# Standard LogRecord attributes; anything else on a record came from `extra=`.
_STANDARD = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "ctx", "taskName"}


def _plain(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str, list, dict)):
        return v
    if isinstance(v, (bytes, bytearray)):
        return bytes(v).hex()
    value = getattr(v, "value", None)  # enums
    return value if isinstance(value, (int, str)) else str(v)


# --- Context -------------------------------------------------------------------


def context() -> Dict[str, Any]:
    """A copy of the fields bound in the current context."""
    return dict(_context.get())


def bind(**fields: Any) -> None:
    _context.set({**_context.get(), **{k: _plain(v) for k, v in fields.items()}})


def unbind(*keys: str) -> None:
    _context.set({k: v for k, v in _context.get().items() if k not in keys})


@contextmanager
def trace_scope(trace_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a trace id for the duration of the block and restore the previous
    context afterwards. Nested scopes reuse the enclosing trace id.
    """
    saved = _context.get()
    tid = trace_id or saved.get("trace_id") or uuid.uuid4().hex[:12]
    token = _context.set({**saved, "trace_id": tid})
    try:
        yield tid
    finally:
        _context.reset(token)


# --- Records -------------------------------------------------------------------


class ContextFilter(logging.Filter):
    """Attach the active context to each record as `record.ctx`."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.ctx = context()
        return True


def _fields(record: logging.LogRecord) -> Dict[str, Any]:
    out = dict(getattr(record, "ctx", {}))
    for k, v in vars(record).items():
        if k not in _STANDARD and not k.startswith("_"):
            out.setdefault(k, _plain(v))
    return out


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds")


class JSONFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, msg, then context and extras."""

    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in _fields(record).items():
            doc.setdefault(k, v)
        if record.exc_info:
            doc["err"] = self.formatException(record.exc_info)
        return json.dumps(doc, default=str, separators=(",", ":"))


class TextFormatter(logging.Formatter):
    """
    `2026-01-05T12:34:56.789+00:00 | INFO    | flow_ix.resolve | trace_id=abc stage=accounts | resolved`
    """

    def format(self, record: logging.LogRecord) -> str:
        fields = _fields(record)
        ordered = [k for k in _TEXT_KEYS if fields.get(k) is not None]
        ordered += [k for k in fields if k not in _TEXT_KEYS]
        parts = [_timestamp(record), f"{record.levelname:<7}", record.name]
        if ordered:
            parts.append(" ".join(f"{k}={fields[k]}" for k in ordered))
        parts.append(record.getMessage())
        line = " | ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# --- Setup ---------------------------------------------------------------------


def _level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    value = getattr(logging, str(level).upper(), None)
    return value if isinstance(value, int) else logging.INFO


def _want_json(flag: Optional[bool], stream: TextIO) -> bool:
    if flag is not None:
        return flag
    env = os.environ.get("FLOW_IX_LOG_FORMAT", "").strip().lower()
    if env in ("json", "text"):
        return env == "json"
    isatty = getattr(stream, "isatty", None)
    return not (callable(isatty) and isatty())


def configure(
    *,
    json: Optional[bool] = None,
    level: Union[str, int] = "INFO",
    stream: Optional[TextIO] = None,
) -> None:
    """
    Route the `flow_ix` logger tree to `stream` (stderr by default).

    `json=None` picks the format from env `FLOW_IX_LOG_FORMAT` (json|text),
    falling back to JSON when the stream is not a terminal. Calling again
    replaces the previous handler.
    """
    stream = stream if stream is not None else sys.stderr
    handler = logging.StreamHandler(stream)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JSONFormatter() if _want_json(json, stream) else TextFormatter())

    root = logging.getLogger(_ROOT)
    root.handlers[:] = [handler]
    root.setLevel(_level(level))
    root.propagate = False
    logging.getLogger("httpx").setLevel(max(_level(level), logging.WARNING))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or _ROOT)


__all__ = [
    "context",
    "bind",
    "unbind",
    "trace_scope",
    "ContextFilter",
    "JSONFormatter",
    "TextFormatter",
    "configure",
    "get_logger",
]
