"""Structured logging to standard output, as JSON lines or console text."""

from __future__ import annotations

import copy
import inspect
import json
import os
import re
import sys
import traceback
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from types import FrameType
from typing import IO, Any, Union

from svcutils import env

_LEVELS: dict[str, int] = {
    "debug": -1,
    "info": 0,
    "warn": 1,
    "error": 2,
    "panic": 4,
    "fatal": 5,
}
_ALIASES = {"warning": "warn"}
_CONFIGURABLE = ("debug", "info", "warn", "error")
_STACKTRACE_FROM = _LEVELS["error"]
_GO_VERB = re.compile(r"%(%|[+#]?v)")
_THIS_FILE = (lambda: None).__code__.co_filename

FieldSource = Union[Mapping[str, Any], Iterable[tuple[str, Any]]]


class LogPanic(Exception):
    """Raised after a message has been logged at panic level."""


@dataclass(frozen=True)
class SpanContext:
    """Identifiers of a trace span: a 16-byte trace id and an 8-byte span id."""

    trace_id: bytes
    span_id: bytes

    def __post_init__(self) -> None:
        if len(self.trace_id) != 16:
            raise ValueError("trace_id must be 16 bytes long")
        if len(self.span_id) != 8:
            raise ValueError("span_id must be 8 bytes long")


def _level_name(level: str | int) -> str:
    if isinstance(level, str):
        name = level.lower()
        name = _ALIASES.get(name, name)
        if name in _LEVELS:
            return name
    elif isinstance(level, int) and not isinstance(level, bool):
        for name, value in _LEVELS.items():
            if value == level:
                return name
    raise ValueError(f"unknown log level: {level!r}")


def _sprint(args: tuple[Any, ...]) -> str:
    """Join operands, adding a space between two that are both non-strings."""
    parts: list[str] = []
    previous_is_str = True
    for position, arg in enumerate(args):
        is_str = isinstance(arg, str)
        if position and not is_str and not previous_is_str:
            parts.append(" ")
        parts.append(str(arg))
        previous_is_str = is_str
    return "".join(parts)


def _sprintf(template: str, args: tuple[Any, ...]) -> str:
    if not args:
        return template
    pattern = _GO_VERB.sub(lambda m: "%%" if m.group(1) == "%" else "%s", template)
    try:
        return pattern % args
    except (TypeError, ValueError):
        return f"{template} {_sprint(args)}"


def _message(args: tuple[Any, ...]) -> str:
    if len(args) == 1 and isinstance(args[0], str):
        return args[0]
    return _sprint(args)


def _timestamp() -> str:
    now = datetime.now().astimezone().replace(microsecond=0)
    text = now.isoformat()
    if now.utcoffset() == timedelta(0):
        text = text[:-6] + "Z"
    return text


def _caller_frame() -> FrameType | None:
    frame = inspect.currentframe()
    while frame is not None and frame.f_code.co_filename == _THIS_FILE:
        frame = frame.f_back
    return frame


def _source(frame: FrameType) -> str:
    path = frame.f_code.co_filename
    directory = os.path.basename(os.path.dirname(path))
    name = os.path.basename(path)
    prefix = f"{directory}/" if directory else ""
    return f"{prefix}{name}:{frame.f_lineno}"


def _pairs(fields: FieldSource) -> tuple[tuple[str, Any], ...]:
    items = fields.items() if isinstance(fields, Mapping) else fields
    return tuple((str(k), v) for k, v in items)


class Logger:
    """An immutable logger; the ``with_*`` methods return derived loggers."""

    def __init__(
        self,
        level: str | int = "info",
        *,
        console: bool = False,
        stream: IO[str] | None = None,
    ) -> None:
        self._min = _LEVELS[_level_name(level)]
        self._console = console
        self._stream = stream
        self._fields: tuple[tuple[str, Any], ...] = ()

    def _derive(self, extra: Iterable[tuple[str, Any]]) -> Logger:
        clone = copy.copy(self)
        clone._fields = self._fields + tuple(extra)
        return clone

    def with_field(self, key: str, value: Any) -> Logger:
        """Return a logger that adds ``key`` to every entry."""
        return self._derive(((key, value),))

    def with_fields(self, fields: FieldSource) -> Logger:
        """Return a logger that adds all of ``fields`` to every entry."""
        return self._derive(_pairs(fields))

    def with_error(self, err: BaseException) -> Logger:
        """Return a logger that records ``err`` under the ``error`` key."""
        return self._derive((("error", str(err)),))

    def with_tracing(self, span: SpanContext | None) -> Logger:
        """Return a logger carrying the span's Datadog trace and span ids."""
        if span is None:
            return self
        return self.with_field(
            "dd.trace_id", int.from_bytes(span.trace_id[8:], "big")
        ).with_field("dd.span_id", int.from_bytes(span.span_id, "big"))

    def _write(self, name: str, message: str, extra: Iterable[tuple[str, Any]]) -> None:
        frame = _caller_frame()
        fields = dict(self._fields)
        fields.update(extra)
        source = _source(frame) if frame is not None else ""
        stack = ""
        if frame is not None and _LEVELS[name] >= _STACKTRACE_FROM:
            stack = "".join(traceback.format_stack(frame)).rstrip()
        del frame

        if self._console:
            line = "\t".join((_timestamp(), name, source, message))
            if fields:
                line += "\t" + json.dumps(fields, default=str, ensure_ascii=False)
            if stack:
                line += "\n" + stack
        else:
            record: dict[str, Any] = {
                "level": name,
                "timestamp": _timestamp(),
                "source": source,
                "message": message,
            }
            record.update(fields)
            if stack:
                record["stacktrace"] = stack
            line = json.dumps(record, default=str, ensure_ascii=False)

        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(line + "\n")

    def _emit(self, name: str, message: str, extra: Iterable[tuple[str, Any]] = ()) -> None:
        if _LEVELS[name] >= self._min:
            self._write(name, message, extra)
        if name == "panic":
            raise LogPanic(message)
        if name == "fatal":
            raise SystemExit(1)

    def check_write(self, level: str | int, msg: str, **kwargs: Any) -> None:
        """Write ``msg`` with ``kwargs`` as fields if ``level`` is enabled."""
        self._emit(_level_name(level), msg, kwargs.items())

    def debugf(self, fmt: str, *args: Any) -> None:
        self._emit("debug", _sprintf(fmt, args))

    def infof(self, fmt: str, *args: Any) -> None:
        self._emit("info", _sprintf(fmt, args))

    def warnf(self, fmt: str, *args: Any) -> None:
        self._emit("warn", _sprintf(fmt, args))

    def warningf(self, fmt: str, *args: Any) -> None:
        self._emit("warn", _sprintf(fmt, args))

    def errorf(self, fmt: str, *args: Any) -> None:
        self._emit("error", _sprintf(fmt, args))

    def fatalf(self, fmt: str, *args: Any) -> None:
        """Log at fatal level, then raise SystemExit(1)."""
        self._emit("fatal", _sprintf(fmt, args))

    def panicf(self, fmt: str, *args: Any) -> None:
        """Log at panic level, then raise LogPanic."""
        self._emit("panic", _sprintf(fmt, args))

    def debug(self, *args: Any) -> None:
        self._emit("debug", _message(args))

    def info(self, *args: Any) -> None:
        self._emit("info", _message(args))

    def warn(self, *args: Any) -> None:
        self._emit("warn", _message(args))

    def warning(self, *args: Any) -> None:
        self._emit("warn", _message(args))

    def error(self, *args: Any) -> None:
        self._emit("error", _message(args))

    def fatal(self, *args: Any) -> None:
        """Log at fatal level, then raise SystemExit(1)."""
        self._emit("fatal", _message(args))

    def panic(self, *args: Any) -> None:
        """Log at panic level, then raise LogPanic."""
        self._emit("panic", _message(args))

    def sync(self) -> None:
        """Flush the output stream."""
        stream = self._stream if self._stream is not None else sys.stdout
        stream.flush()


def _configured_level() -> str:
    level = env.get_as_string("LOG_LEVEL", "info")
    return level if level in _CONFIGURABLE else "info"


def _use_console() -> bool:
    return os.environ.get("CONSOLE_LOGGER", "").lower() == "true"


_base = Logger(_configured_level(), console=_use_console())


def set_default_service(value: str) -> None:
    """Add a ``service`` field to every entry of the base logger."""
    set_default_field("service", value)


def set_default_field(key: str, value: Any) -> None:
    """Add a field to every entry of the base logger."""
    global _base
    _base = _base.with_field(key, value)


def base() -> Logger:
    """Return the base logger."""
    return _base


def with_field(key: str, value: Any) -> Logger:
    return _base.with_field(key, value)


def with_fields(fields: FieldSource) -> Logger:
    return _base.with_fields(fields)


def with_error(err: BaseException) -> Logger:
    return _base.with_error(err)


def with_tracing(span: SpanContext | None) -> Logger:
    """Return the base logger with the span's Datadog trace fields."""
    return _base.with_tracing(span)


def debugf(fmt: str, *args: Any) -> None:
    _base.debugf(fmt, *args)


def infof(fmt: str, *args: Any) -> None:
    _base.infof(fmt, *args)


def warnf(fmt: str, *args: Any) -> None:
    _base.warnf(fmt, *args)


def warningf(fmt: str, *args: Any) -> None:
    _base.warningf(fmt, *args)


def errorf(fmt: str, *args: Any) -> None:
    _base.errorf(fmt, *args)


def fatalf(fmt: str, *args: Any) -> None:
    _base.fatalf(fmt, *args)


def panicf(fmt: str, *args: Any) -> None:
    _base.panicf(fmt, *args)


def debug(*args: Any) -> None:
    _base.debug(*args)


def info(*args: Any) -> None:
    _base.info(*args)


def warn(*args: Any) -> None:
    _base.warn(*args)


def warning(*args: Any) -> None:
    _base.warning(*args)


def error(*args: Any) -> None:
    _base.error(*args)


def fatal(*args: Any) -> None:
    _base.fatal(*args)


def panic(*args: Any) -> None:
    _base.panic(*args)


def check_write(level: str | int, msg: str, **kwargs: Any) -> None:
    _base.check_write(level, msg, **kwargs)