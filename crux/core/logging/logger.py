"""Structured JSON logging with request trace propagation."""

from __future__ import annotations

import json
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import IO, Any, Iterator
from uuid import uuid4

from loguru import logger

from crux.core.logging.config import LogConfig

# Fields promoted to the top level of every JSON record.
_PROMOTED_FIELDS = ("trace_id", "data_type", "client_ip")

_TRACE_ID_VAR: ContextVar[str | None] = ContextVar("crux_trace_id", default=None)
_CONTEXT_VAR: ContextVar[dict[str, Any]] = ContextVar("crux_log_context", default={})


def _ensure_trace_id() -> str:
    trace_id = _TRACE_ID_VAR.get()
    if trace_id is None:
        trace_id = uuid4().hex
        _TRACE_ID_VAR.set(trace_id)
    return trace_id


def _patch_record(record: dict[str, Any]) -> None:
    extra = record["extra"]
    trace_id = extra.get("trace_id")
    if trace_id:
        _TRACE_ID_VAR.set(trace_id)
    else:
        extra["trace_id"] = _ensure_trace_id()

    for key, value in _CONTEXT_VAR.get({}).items():
        if key != "trace_id" and extra.get(key) is None:
            extra[key] = value

    extra.setdefault("data_type", None)
    extra.setdefault("client_ip", None)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _format_payload(record: dict[str, Any]) -> dict[str, Any]:
    extra = record.get("extra", {})
    context = {k: v for k, v in extra.items() if k not in _PROMOTED_FIELDS}
    level_value = record.get("level")
    level_name = getattr(level_value, "name", None) or "INFO"
    timestamp = record["time"] if "time" in record else datetime.now(UTC)
    payload: dict[str, Any] = {
        "timestamp": timestamp.isoformat(),
        "level": level_name,
        "message": record.get("message"),
    }
    for field in _PROMOTED_FIELDS:
        payload[field] = extra.get(field)
    if context:
        payload["context"] = context
    exception = record.get("exception")
    if exception:
        payload["exception"] = f"{exception.type.__name__}: {exception.value}"
    return payload


class _StreamJsonSink:
    """Sink writing structured JSON payloads to a text stream."""

    def __init__(self, stream: IO[str]) -> None:
        self._stream = stream

    def __call__(self, message: Any) -> None:
        payload = _format_payload(message.record)
        self._stream.write(json.dumps(payload, default=_json_default))
        self._stream.write("\n")
        self._stream.flush()


class _FileJsonSink:
    """Sink persisting JSON lines to a file path."""

    def __init__(self, path: str) -> None:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._path = path

    def __call__(self, message: Any) -> None:
        payload = _format_payload(message.record)
        with open(self._path, "a", encoding="utf-8") as file:
            file.write(json.dumps(payload, default=_json_default))
            file.write("\n")


def _configure_from_config(config: LogConfig) -> None:
    handlers: list[dict[str, Any]] = []
    if config.console_output:
        stream = config.console_stream or sys.stderr
        handlers.append({"sink": _StreamJsonSink(stream), "level": config.level.upper()})
    if config.file_output and config.file_path:
        handlers.append({"sink": _FileJsonSink(config.file_path), "level": config.level.upper()})

    configure_kwargs: dict[str, Any] = {"handlers": handlers, "patcher": _patch_record}
    if config.extra:
        configure_kwargs["extra"] = config.extra
    logger.configure(**configure_kwargs)


def configure_logging(level: str = "INFO", **kwargs: Any) -> None:
    """Configure structured logging with the provided level and options."""

    _configure_from_config(LogConfig(level=level, **kwargs))


class StructuredLogger:
    """Wrapper exposing the configured loguru logger with trace-aware context helpers."""

    def __init__(self, config: LogConfig | None = None) -> None:
        self.config = config or LogConfig()
        _configure_from_config(self.config)
        self.logger = logger

    def configure(self, **kwargs: Any) -> None:
        """Update logger configuration at runtime."""

        self.config = self.config.model_copy(update=kwargs)
        _configure_from_config(self.config)

    @contextmanager
    def context(self, *, trace_id: str | None = None, **extra: Any) -> Iterator[str]:
        with log_context(trace_id=trace_id, **extra) as active_trace:
            yield active_trace


def get_logger(name: str | None = None) -> Any:
    """Return the global logger, optionally bound to ``name``."""

    if name:
        return logger.bind(logger_name=name)
    return logger


@contextmanager
def log_context(*, trace_id: str | None = None, **extra: Any) -> Iterator[str]:
    """Context manager that propagates trace ids and additional metadata."""

    previous_context = _CONTEXT_VAR.get({})
    context_token = _CONTEXT_VAR.set({**previous_context, **extra})

    active_trace = trace_id or uuid4().hex
    trace_token = _TRACE_ID_VAR.set(active_trace)

    try:
        yield active_trace
    finally:
        _TRACE_ID_VAR.reset(trace_token)
        _CONTEXT_VAR.reset(context_token)


def current_trace_id() -> str:
    """Return the currently active trace id, generating one if required."""

    return _ensure_trace_id()


configure_logging()


__all__ = [
    "StructuredLogger",
    "configure_logging",
    "current_trace_id",
    "get_logger",
    "log_context",
    "logger",
]
