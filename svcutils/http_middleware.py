"""WSGI middleware: CORS, content-type checks, panic recovery and slash trimming."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Sequence
from http import HTTPStatus
from typing import Any, Optional

from svcutils import log
from svcutils.http_server import (
    ERR_RESPONSE_INTERNAL_SERVER_ERROR,
    ERR_RESPONSE_UNSUPPORTED_MEDIA_TYPE,
    MIME_PARAMETER_UTF8,
    SPAN_ENVIRON_KEY,
    StartResponse,
    WSGIApp,
    write_json_response,
)

_CORS_HEADERS = (
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "PUT, POST, GET, DELETE"),
    ("Access-Control-Allow-Headers", "Authorization, Content-Type"),
)


def _span(environ: dict) -> Optional[log.SpanContext]:
    span = environ.get(SPAN_ENVIRON_KEY)
    return span if isinstance(span, log.SpanContext) else None


def _with_headers(
    start_response: StartResponse, defaults: Sequence[tuple[str, str]]
) -> StartResponse:
    """Wrap ``start_response`` so ``defaults`` are sent unless the app sets them."""

    def wrapped(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
        present = {name.lower() for name, _ in headers}
        extra = [(n, v) for n, v in defaults if n.lower() not in present]
        return start_response(status, [*extra, *headers], exc_info)

    return wrapped


def cors_middleware(app: WSGIApp) -> WSGIApp:
    """Allow any origin; answer OPTIONS requests directly with 204."""

    def wrapped(environ: dict, start_response: StartResponse) -> Iterable[bytes]:
        if environ.get("REQUEST_METHOD", "") == "OPTIONS":
            start_response(f"{HTTPStatus.NO_CONTENT.value} No Content", list(_CORS_HEADERS))
            return []
        return app(environ, _with_headers(start_response, _CORS_HEADERS))

    return wrapped


def cors_middleware_v2(app: WSGIApp) -> WSGIApp:
    """Echo the request's Origin header as the allowed origin."""

    def wrapped(environ: dict, start_response: StartResponse) -> Iterable[bytes]:
        origin = environ.get("HTTP_ORIGIN", "")
        return app(
            environ,
            _with_headers(start_response, (("Access-Control-Allow-Origin", origin),)),
        )

    return wrapped


def options(methods: Iterable[str], headers: Iterable[str]) -> WSGIApp:
    """Return a WSGI app answering OPTIONS with the allowed methods and headers."""
    allowed = (
        ("Access-Control-Allow-Methods", ", ".join(methods)),
        ("Access-Control-Allow-Headers", ", ".join(headers)),
    )

    def app(environ: dict, start_response: StartResponse) -> Iterable[bytes]:
        start_response("200 OK", [*allowed, ("Content-Length", "0")])
        return []

    return app


def content_type(app: WSGIApp, *content_types: str) -> WSGIApp:
    """Reject requests whose Content-Type is not one of ``content_types`` with 415.

    The only parameter accepted on the content type is ``charset=utf-8``.
    """
    valid = {value.lower() for value in content_types}

    def wrapped(environ: dict, start_response: StartResponse) -> Iterable[bytes]:
        requested = environ.get("CONTENT_TYPE", "").lower()
        parts = requested.split(";")

        if parts[0] not in valid:
            log.with_tracing(_span(environ)).with_field("contentType", requested).warn(
                "Unsupported Content-Type"
            )
        elif len(parts) == 1 or parts[1].strip() == MIME_PARAMETER_UTF8:
            return app(environ, start_response)
        else:
            log.with_tracing(_span(environ)).with_field("contentType", requested).warn(
                "Unsupported Content-Type Parameter"
            )
        return write_json_response(
            None, HTTPStatus.UNSUPPORTED_MEDIA_TYPE, ERR_RESPONSE_UNSUPPORTED_MEDIA_TYPE
        )(start_response)

    return wrapped


def recovery(app: WSGIApp) -> WSGIApp:
    """Turn an exception raised by ``app`` into a logged JSON 500 response.

    The wrapped app's body is collected before it is returned, so errors
    raised while it is produced are caught too.
    """

    def wrapped(environ: dict, start_response: StartResponse) -> Iterable[bytes]:
        try:
            result = app(environ, start_response)
            try:
                return list(result)
            finally:
                close = getattr(result, "close", None)
                if callable(close):
                    close()
        except Exception as exc:
            exc_info = sys.exc_info()
            log.with_tracing(_span(environ)).with_field("recover", repr(exc)).error(
                "Recovered from a panic"
            )
            response = write_json_response(
                environ, HTTPStatus.INTERNAL_SERVER_ERROR, ERR_RESPONSE_INTERNAL_SERVER_ERROR
            )
            return response(lambda status, headers: start_response(status, headers, exc_info))

    return wrapped


def trailing_slash_middleware(app: WSGIApp) -> WSGIApp:
    """Strip one trailing slash from the request path, unless the URL is ``/``."""

    def wrapped(environ: dict, start_response: StartResponse) -> Iterable[bytes]:
        path = environ.get("PATH_INFO", "")
        query = environ.get("QUERY_STRING", "")
        url = f"{path}?{query}" if query else path
        if url != "/":
            environ = {**environ, "PATH_INFO": path.removesuffix("/")}
        return app(environ, start_response)

    return wrapped