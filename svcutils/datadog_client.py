"""Clients that ship log entries to the Datadog log intake."""

from __future__ import annotations

import json
import socket
import ssl
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, is_dataclass
from typing import Any

from svcutils import log

_DEFAULT_MAX_RETRIES = 2
_BACKOFF_MS = 100
_MAX_BACKOFF_MS = 1000
_JSON_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


class DatadogClientError(Exception):
    """Raised when a log entry cannot be delivered to Datadog."""


class LogClient(ABC):
    """Something that accepts log entries for Datadog."""

    @abstractmethod
    def post_log_entry(self, log_entry: Any) -> None:
        """Deliver one log entry; raise on failure."""


def _json_default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


def _encode(log_entry: Any) -> str:
    try:
        text = json.dumps(
            log_entry,
            default=_json_default,
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False,
        )
    except (TypeError, ValueError) as exc:
        raise DatadogClientError(f"failed to marshal logEntry to json: {exc}") from exc
    for char, escaped in _JSON_ESCAPES:
        text = text.replace(char, escaped)
    return text


class TCPClient(LogClient):
    """Sends log entries as API-key prefixed JSON lines over TCP, optionally TLS."""

    def __init__(self, host: str, port: str | int, api_key: str, use_ssl: bool) -> None:
        self.host = host
        self.port = str(port)
        self.use_ssl = use_ssl
        self._api_key = api_key
        self._max_retries = _DEFAULT_MAX_RETRIES
        self._conn: Any = None
        self._lock = threading.RLock()

    @property
    def max_retries(self) -> int:
        """How many times a failed write is retried."""
        return self._max_retries

    def with_max_retries(self, max_retries: int) -> TCPClient:
        """Set the number of retries; negative values are ignored."""
        with self._lock:
            if max_retries >= 0:
                self._max_retries = max_retries
        return self

    def connect(self) -> None:
        """Open the connection unless one is already open."""
        with self._lock:
            if self._conn is not None:
                return
            address = f"{self.host}:{self.port}"
            try:
                conn = socket.create_connection((self.host, int(self.port)))
            except (OSError, ValueError) as exc:
                raise DatadogClientError(
                    f"failed to connect to datadog api on [{address}]: {exc}"
                ) from exc
            if self.use_ssl:
                context = ssl.create_default_context()
                context.minimum_version = ssl.TLSVersion.TLSv1_2
                try:
                    conn = context.wrap_socket(conn, server_hostname=self.host)
                except OSError as exc:
                    conn.close()
                    raise DatadogClientError(
                        f"failed initial ssl handshake to datadog api: {exc}"
                    ) from exc
            self._conn = conn

    def disconnect(self) -> None:
        """Close the connection if one is open."""
        with self._lock:
            conn, self._conn = self._conn, None
            if conn is None:
                return
            try:
                conn.close()
            except OSError as exc:
                raise DatadogClientError(
                    f"failed to disconnect from the datadog api: {exc}"
                ) from exc

    def reconnect(self) -> None:
        """Drop and reopen the connection, logging rather than raising failures."""
        try:
            self.disconnect()
        except DatadogClientError as exc:
            log.with_error(exc).debugf(
                "failed to disconnect from datadog api during a retry attempt"
            )
        try:
            self.connect()
        except DatadogClientError as exc:
            log.with_error(exc).debugf(
                "failed to connect to datadog api during a retry attempt"
            )

    def _send(self, payload: bytes) -> None:
        with self._lock:
            conn = self._conn
            if conn is None:
                raise ConnectionError("not connected to the datadog api")
            conn.sendall(payload)

    def post_log_entry(self, log_entry: Any) -> None:
        """Send one log entry, retrying with backoff and reconnecting on failure."""
        try:
            self.connect()
        except DatadogClientError as exc:
            raise DatadogClientError(f"failed to connect: {exc}") from exc

        payload = f"{self._api_key} {_encode(log_entry)}\n".encode("utf-8")

        failure: OSError | None = None
        attempt = 0
        while attempt <= self._max_retries:
            try:
                self._send(payload)
                return
            except OSError as exc:
                failure = exc
            attempt += 1
            time.sleep(min(_BACKOFF_MS * attempt, _MAX_BACKOFF_MS) / 1000)
            self.reconnect()

        raise DatadogClientError(f"failed to send log entry: {failure}") from failure

    def __enter__(self) -> TCPClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.disconnect()