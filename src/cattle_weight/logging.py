from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Final, Literal, TypedDict

from .request_context import request_id_var

_LOGGER_NAME: Final[str] = "cattle_weight"
_INT_FIELDS: Final[frozenset[str]] = frozenset({"latency_ms"})
_FLOAT_FIELDS: Final[frozenset[str]] = frozenset({"weight_kg"})
_STR_FIELDS: Final[tuple[str, ...]] = ("model_id", "source", "state")

LogStyle = Literal["json", "pretty", "auto"]


class LogEvent(TypedDict, total=False):
    event: str
    latency_ms: int
    weight_kg: float
    model_id: str
    source: str
    state: str


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        payload: dict[str, object] = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": msg,
        }
        rid = request_id_var.get()
        if rid:
            payload["request_id"] = rid
        fields = _parse_evt_fields(msg)
        if "event" in fields:
            payload["message"] = str(fields.pop("event"))
        payload.update(fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class _ConsoleFormatter(logging.Formatter):
    """One colored line per record: ``[time] [LEVEL] event key=value ...``."""

    _RESET = "\x1b[0m"
    _DIM = "\x1b[2m"
    _BOLD = "\x1b[1m"
    _KEY = "\x1b[36m"
    _TAGS: Final[tuple[tuple[int, str, str], ...]] = (
        (logging.ERROR, "ERROR", "\x1b[91m"),
        (logging.WARNING, "WARN", "\x1b[93m"),
        (logging.INFO, "INFO", "\x1b[36m"),
        (logging.NOTSET, "DEBUG", "\x1b[90m"),
    )

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now(UTC).strftime("%H:%M:%S")
        name, color = next((n, c) for lvl, n, c in self._TAGS if record.levelno >= lvl)
        parts = [f"{self._DIM}[{ts}]{self._RESET}", f"{self._BOLD}{color}[{name}]{self._RESET}"]
        parts.extend(self._tokens(record.getMessage()))
        rid = request_id_var.get()
        if rid:
            parts.append(f"{self._DIM}rid={rid}{self._RESET}")
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

    def _tokens(self, msg: str) -> list[str]:
        if msg.startswith("EVT "):
            fields = _parse_evt_fields(msg)
            words = [str(fields.pop("event", "event"))]
            words += [f"{k}={v}" for k, v in fields.items()]
        else:
            words = msg.split()
        out: list[str] = []
        for i, word in enumerate(words):
            key, sep, val = word.partition("=")
            if sep and key:
                out.append(f"{self._KEY}{key}{self._RESET}={val}")
            elif i == 0:
                out.append(f"{self._BOLD}{word}{self._RESET}")
            else:
                out.append(word)
        return out


def log_event(event: str, fields: Mapping[str, object] | None = None) -> None:
    """Emit ``EVT event=<name> key=value ...``; the JSON formatter types the values."""
    parts = [f"event={event}"]
    fields = fields or {}
    latency = fields.get("latency_ms")
    if isinstance(latency, int):
        parts.append(f"latency_ms={latency}")
    weight = fields.get("weight_kg")
    if isinstance(weight, float):
        parts.append(f"weight_kg={weight}")
    for key in _STR_FIELDS:
        val = fields.get(key)
        if isinstance(val, str) and val:
            parts.append(f"{key}={val.replace(' ', '_')}")
    get_logger().info("EVT " + " ".join(parts))


def _parse_evt_fields(msg: str) -> dict[str, object]:
    if not msg.startswith("EVT "):
        return {}
    out: dict[str, object] = {}
    for tok in msg[4:].split():
        key, sep, val = tok.partition("=")
        if sep and key:
            out[key] = _coerce(key, val)
    return out


def _coerce(key: str, val: str) -> object:
    try:
        if key in _INT_FIELDS:
            return int(val)
        if key in _FLOAT_FIELDS:
            return float(val)
    except ValueError:
        return val
    return val


def _env_level() -> int:
    name = (os.environ.get("CATTLE_LOG_LEVEL") or "").strip().upper()
    level = logging.getLevelNamesMapping().get(name, logging.INFO)
    return level if level > logging.NOTSET else logging.INFO


def _env_truthy(name: str) -> bool:
    return (os.environ.get(name) or "").strip().lower() in {"1", "true", "yes", "on", "y"}


def _choose_formatter(style: LogStyle = "auto") -> logging.Formatter:
    if style == "auto":
        isatty = getattr(sys.stdout, "isatty", None)
        pretty = _env_truthy("CATTLE_LOG_PRETTY") or (callable(isatty) and bool(isatty()))
        style = "pretty" if pretty and not _env_truthy("CATTLE_LOG_JSON") else "json"
    return _ConsoleFormatter() if style == "pretty" else _JsonFormatter()


def init_logging(style: LogStyle = "auto") -> logging.Logger:
    """Bind the project logger to the current ``sys.stdout`` with one handler.

    Safe to call repeatedly; the app factory and tests both do.
    """
    logger = get_logger()
    level = _env_level()
    logger.setLevel(level)
    logger.propagate = _env_truthy("CATTLE_LOG_PROPAGATE")
    for h in [h for h in logger.handlers if isinstance(h, logging.StreamHandler)]:
        logger.removeHandler(h)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(_choose_formatter(style))
    handler.setLevel(level)
    logger.addHandler(handler)
    return logger


def get_logger() -> logging.Logger:
    return logging.getLogger(_LOGGER_NAME)
