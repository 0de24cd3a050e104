"""JSON responses, request decoding and a health endpoint for WSGI services."""

from __future__ import annotations

import gzip
import json
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import IO, Any, Optional, Union
from wsgiref.simple_server import make_server

from svcutils import log

HEADER_CONTENT_TYPE = "Content-Type"
HEADER_AUTHORIZATION = "Authorization"
HEADER_CLIENT_ID = "X-Client-ID"
MIME_JSON = "application/json"
MIME_PARAMETER_UTF8 = "charset=utf-8"

ERR_MESSAGE_UNSUPPORTED_MEDIA_TYPE = "unsupported media type"
ERR_MESSAGE_INTERNAL_SERVER_ERROR = "internal server error"
ERR_MESSAGE_UNAUTHORIZED = "unauthorized"
ERR_MESSAGE_NOT_FOUND = "not found"

ERR_RESPONSE_UNSUPPORTED_MEDIA_TYPE = b'{"error": {"message": "unsupported media type"}}'
ERR_RESPONSE_INTERNAL_SERVER_ERROR = b'{"error": {"message": "internal server error"}}'
ERR_RESPONSE_UNAUTHORIZED = b'{"error": {"message": "unauthorized"}}'
ERR_RESPONSE_NOT_FOUND = b'{"error": {"message": "not found"}}'

SPAN_ENVIRON_KEY = "svcutils.span"
"""WSGI environ key under which a request's trace span context may be stored."""

# Bodies no larger than one packet are not worth compressing.
GZIP_MIN_BODY_SIZE = 1400

_HEALTH_BODY = b'{"status": "ok"}'

StartResponse = Callable[..., Any]
WSGIApp = Callable[[dict, StartResponse], Iterable[bytes]]


def _span(environ: Optional[Mapping[str, Any]]) -> Optional[log.SpanContext]:
    if environ is None:
        return None
    span = environ.get(SPAN_ENVIRON_KEY)
    return span if isinstance(span, log.SpanContext) else None


def _status_line(code: int) -> str:
    try:
        phrase = HTTPStatus(code).phrase
    except ValueError:
        phrase = ""
    return f"{code} {phrase}"


def error_response(message: str) -> bytes:
    """Return the JSON error body carrying ``message``."""
    return json.dumps({"error": {"message": message}}).encode("utf-8")


@dataclass
class JSONResponse:
    """A response ready to be handed to a WSGI ``start_response``."""

    status: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    @property
    def status_line(self) -> str:
        """The status as a WSGI status line."""
        return _status_line(self.status)

    def header(self, name: str) -> Optional[str]:
        """Return the value of header ``name``, ignoring case."""
        lowered = name.lower()
        return next((v for n, v in self.headers if n.lower() == lowered), None)

    def __call__(self, start_response: StartResponse) -> list[bytes]:
        start_response(self.status_line, list(self.headers))
        return [self.body]


def unmarshal_request(body: Union[bytes, bytearray, str, IO[Any]]) -> Any:
    """Decode a JSON request body, closing it when it is a stream."""
    try:
        if isinstance(body, (bytes, bytearray, str)):
            data = body
        else:
            try:
                data = body.read()
            finally:
                close = getattr(body, "close", None)
                if callable(close):
                    close()
        return json.loads(data)
    except ValueError as exc:
        raise ValueError(f"failed to unmarshal request body: {exc}") from exc


def write_json_response(
    environ: Optional[Mapping[str, Any]], code: int, body: Union[bytes, str]
) -> JSONResponse:
    """Build a JSON response, gzipped when the client accepts it and it pays off."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    headers = [(HEADER_CONTENT_TYPE, MIME_JSON)]
    accepts_gzip = environ is not None and "gzip" in environ.get("HTTP_ACCEPT_ENCODING", "")
    if accepts_gzip and len(body) > GZIP_MIN_BODY_SIZE:
        headers.append(("Content-Encoding", "gzip"))
        body = gzip.compress(body, mtime=0)
    headers.append(("Content-Length", str(len(body))))
    return JSONResponse(status=code, headers=headers, body=body)


def marshal_and_write_json_response(
    environ: Optional[Mapping[str, Any]], code: int, value: Any
) -> JSONResponse:
    """Encode ``value`` as JSON and build the response; fall back to an error body."""
    try:
        body = json.dumps(value).encode("utf-8")
    except (TypeError, ValueError) as exc:
        log.with_error(exc).with_tracing(_span(environ)).with_field(
            "type", type(value).__name__
        ).error("Failed to marshal response body")
        body = ERR_RESPONSE_INTERNAL_SERVER_ERROR
    return write_json_response(environ, code, body)


def status_not_found_handler() -> WSGIApp:
    """Return a WSGI app that answers every request with a JSON 404."""

    def app(environ: dict, start_response: StartResponse) -> Iterable[bytes]:
        return write_json_response(environ, HTTPStatus.NOT_FOUND, ERR_RESPONSE_NOT_FOUND)(
            start_response
        )

    return app


def health_app(environ: dict, start_response: StartResponse) -> Iterable[bytes]:
    """Answer ``/health`` with an ok status; every other path is not found."""
    if environ.get("PATH_INFO", "") == "/health":
        return write_json_response(environ, HTTPStatus.OK, _HEALTH_BODY)(start_response)
    body = b"404 page not found\n"
    start_response(
        _status_line(HTTPStatus.NOT_FOUND),
        [
            (HEADER_CONTENT_TYPE, "text/plain; charset=utf-8"),
            ("X-Content-Type-Options", "nosniff"),
            ("Content-Length", str(len(body))),
        ],
    )
    return [body]


def start_health_server(port: Union[str, int]) -> None:
    """Serve the health endpoint on ``port``; blocks, and logs if serving fails."""
    log.infof("Starting health server on port %s", port)
    try:
        with make_server("", int(port), health_app) as server:
            server.serve_forever()
    except (OSError, ValueError) as exc:
        log.with_error(exc).error("ListenAndServe")