"""Forwarding of CloudWatch Logs subscription events to Datadog."""

from __future__ import annotations

import base64
import binascii
import gzip
import json
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from svcutils import lambda_messages
from svcutils.datadog_client import LogClient
from svcutils.tags import Tags

_LAMBDA_EVENT_TYPE = "lambda"
_ECS_EVENT_TYPE = "ecs"
_CLOUDWATCH_EVENT_TYPE = "cloudwatch"
_DEFAULT_NO_OF_WORKERS = 1
_BYTE_ORDER_MARK = "\ufeff"
_UINT64_MAX = 2**64 - 1


def _typed(data: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if kind is int:
        valid = isinstance(value, int) and not isinstance(value, bool)
    else:
        valid = isinstance(value, kind)
    if not valid:
        raise ValueError(f"invalid value for {key!r}: {value!r}")
    return value


@dataclass
class LogEvent:
    """One log line of a CloudWatch Logs subscription."""

    id: str = ""
    timestamp: int = 0
    message: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogEvent:
        if not isinstance(data, dict):
            raise ValueError("log event is not a JSON object")
        return cls(
            id=_typed(data, "id", str, ""),
            timestamp=_typed(data, "timestamp", int, 0),
            message=_typed(data, "message", str, ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "timestamp": self.timestamp, "message": self.message}


@dataclass
class LogsData:
    """The decoded payload of a CloudWatch Logs subscription event."""

    owner: str = ""
    log_group: str = ""
    log_stream: str = ""
    subscription_filters: list[str] = field(default_factory=list)
    message_type: str = ""
    log_events: list[LogEvent] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogsData:
        if not isinstance(data, dict):
            raise ValueError("logs data is not a JSON object")
        filters = _typed(data, "subscriptionFilters", list, [])
        events = _typed(data, "logEvents", list, [])
        return cls(
            owner=_typed(data, "owner", str, ""),
            log_group=_typed(data, "logGroup", str, ""),
            log_stream=_typed(data, "logStream", str, ""),
            subscription_filters=[str(item) for item in filters],
            message_type=_typed(data, "messageType", str, ""),
            log_events=[LogEvent.from_dict(item) for item in events],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner": self.owner,
            "logGroup": self.log_group,
            "logStream": self.log_stream,
            "subscriptionFilters": list(self.subscription_filters),
            "messageType": self.message_type,
            "logEvents": [event.to_dict() for event in self.log_events],
        }


def parse_aws_logs(data: str | bytes) -> LogsData:
    """Decode base64, gunzip and parse the ``awslogs.data`` field of an event."""
    try:
        compressed = base64.b64decode(data, validate=True)
        document = json.loads(gzip.decompress(compressed))
        return LogsData.from_dict(document)
    except (binascii.Error, OSError, EOFError, ValueError) as exc:
        raise ValueError(f"invalid AWS logs data: {exc}") from exc


def encode_aws_logs(logs_data: LogsData) -> str:
    """Encode logs data the way CloudWatch delivers it: JSON, gzip, base64."""
    raw = json.dumps(logs_data.to_dict()).encode("utf-8")
    return base64.b64encode(gzip.compress(raw)).decode("ascii")


def _wrap(message: str, cause: BaseException) -> RuntimeError:
    error = RuntimeError(f"{message}: {cause}")
    error.__cause__ = cause
    return error


def _event_type(log_group: str) -> str:
    if "/aws/lambda/" in log_group:
        return _LAMBDA_EVENT_TYPE
    if "/aws/ecs/" in log_group:
        return _ECS_EVENT_TYPE
    return _CLOUDWATCH_EVENT_TYPE


def _source(event_type: str, log_group: str) -> str:
    if event_type == _LAMBDA_EVENT_TYPE:
        return log_group.replace("/aws/lambda/", "", 1)
    if event_type == _ECS_EVENT_TYPE:
        return log_group.replace("/aws/ecs/fargate/", "", 1)
    return _CLOUDWATCH_EVENT_TYPE


def _optional_uint64(document: dict[str, Any], key: str) -> int | None:
    value = document.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _UINT64_MAX:
        raise ValueError(f"{key} must be an unsigned 64-bit integer, got {value!r}")
    return value


def _handle_json(msg: str, document: dict[str, Any]) -> None:
    text = msg[len(_BYTE_ORDER_MARK):] if msg.startswith(_BYTE_ORDER_MARK) else msg
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError("log message is not a JSON object")
    document.update(parsed)

    trace_id = _optional_uint64(parsed, "dd.trace_id")
    span_id = _optional_uint64(parsed, "dd.span_id")
    if trace_id is not None:
        if span_id is None:
            raise ValueError("dd.trace_id given without dd.span_id")
        document["dd.trace_id"] = trace_id
        document["dd.span_id"] = span_id

    if "msg" in document:
        document["message"] = document.pop("msg")


class _Worker:
    def __init__(
        self, service: str, client: LogClient, tags: Tags, event_type: str, source: str
    ) -> None:
        self.service = service
        self.client = client
        self.tags = tags
        self.event_type = event_type
        self.source = source
        self.errors: list[Exception] = []

    def run(self, next_event: Callable[[], LogEvent | None]) -> None:
        while (event := next_event()) is not None:
            try:
                entry = self.map_to_datadog_log(event)
            except ValueError as exc:
                self.errors.append(
                    _wrap(f"failed to map AWS log event [{event.id}] to a Datadog log", exc)
                )
                continue
            if entry is None:
                continue
            try:
                self.client.post_log_entry(entry)
            except Exception as exc:  # any client failure is reported, not raised
                self.errors.append(
                    _wrap(f"failed to send AWS log event [{event.id}] to Datadog", exc)
                )

    def map_to_datadog_log(self, event: LogEvent) -> Any:
        msg = event.message.strip()
        if not msg:
            return None
        if msg.startswith("MONITORING"):
            return msg

        document: dict[str, Any] = {}
        if msg.startswith("{") and msg.endswith("}"):
            _handle_json(msg, document)
        else:
            document["message"] = msg

        document.setdefault("application", "backend")
        document["ddsourcecategory"] = self.event_type
        document["service"] = self.service
        document["timestamp"] = event.timestamp
        document["ddsource"] = self.source

        if self.event_type == _LAMBDA_EVENT_TYPE:
            parsed = lambda_messages.parse(event.message)
            document[_LAMBDA_EVENT_TYPE] = (
                parsed if parsed is not None else lambda_messages.LambdaBaseMsg(type="message")
            )

        document["ddtags"] = str(self.tags)
        return document


class Processor:
    """Turns CloudWatch Logs events into Datadog log entries and posts them."""

    def __init__(self, service: str, client: LogClient) -> None:
        self._service = service
        self._client = client
        self._tags = Tags()
        self._no_of_workers = _DEFAULT_NO_OF_WORKERS
        self._errors: list[Exception] = []

    def with_tags(self, tags: Tags) -> Processor:
        self._tags = tags
        return self

    def with_no_of_workers(self, no_of_workers: int) -> Processor:
        if no_of_workers < 0:
            raise ValueError("number of workers may not be negative")
        self._no_of_workers = no_of_workers
        return self

    def errors(self) -> list[Exception]:
        """Return the errors collected by all calls to ``process``."""
        return list(self._errors)

    def process(self, aws_logs: str | bytes, cancel: threading.Event | None = None) -> None:
        """Parse the encoded ``awslogs.data`` payload and post each event.

        Events not yet handed to a worker are dropped once ``cancel`` is set.
        """
        try:
            logs_data = parse_aws_logs(aws_logs)
        except ValueError as exc:
            self._errors.append(_wrap("failed to parse raw AWS logs", exc))
            return

        event_type = _event_type(logs_data.log_group)
        source = _source(event_type, logs_data.log_group)

        events = iter(logs_data.log_events)
        lock = threading.Lock()

        def next_event() -> LogEvent | None:
            with lock:
                for event in events:
                    if cancel is None or not cancel.is_set():
                        return event
                return None

        workers = [
            _Worker(self._service, self._client, self._tags, event_type, source)
            for _ in range(self._no_of_workers)
        ]
        threads = [threading.Thread(target=worker.run, args=(next_event,)) for worker in workers]
        for thread in threads:
            thread.start()
        for thread, worker in zip(threads, workers):
            thread.join()
            self._errors.extend(worker.errors)