from wsgiref.util import setup_testing_defaults

from svcutils import http_middleware
from svcutils.http_server import (
    ERR_RESPONSE_INTERNAL_SERVER_ERROR,
    ERR_RESPONSE_UNSUPPORTED_MEDIA_TYPE,
)


def make_environ(**overrides):
    environ = dict(overrides)
    setup_testing_defaults(environ)
    return environ


def call(app, environ):
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = dict(headers)

    body = b"".join(app(environ, start_response))
    return captured["status"], captured["headers"], body


class Recorder:
    def __init__(self, headers=None, body=b"inner"):
        self.calls = []
        self.headers = headers or []
        self.body = body

    def __call__(self, environ, start_response):
        self.calls.append(environ)
        start_response("200 OK", list(self.headers))
        return [self.body]


def _broken_while_iterating(environ, start_response):
    start_response("200 OK", [])
    yield b"partial"
    raise KeyError("missing")


def _broken_on_call(environ, start_response):
    raise RuntimeError("boom")


def test_cors_middleware_answers_options():
    inner = Recorder()
    status, headers, body = call(
        http_middleware.cors_middleware(inner), make_environ(REQUEST_METHOD="OPTIONS")
    )
    assert status.startswith("204")
    assert body == b""
    assert inner.calls == []
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert headers["Access-Control-Allow-Methods"] == "PUT, POST, GET, DELETE"
    assert headers["Access-Control-Allow-Headers"] == "Authorization, Content-Type"


def test_cors_middleware_passes_other_methods():
    inner = Recorder()
    status, headers, body = call(
        http_middleware.cors_middleware(inner), make_environ(REQUEST_METHOD="GET")
    )
    assert status.startswith("200")
    assert body == b"inner"
    assert len(inner.calls) == 1
    assert headers["Access-Control-Allow-Origin"] == "*"


def test_cors_middleware_app_header_wins():
    inner = Recorder(headers=[("Access-Control-Allow-Origin", "https://app.example.com")])
    _status, headers, _body = call(
        http_middleware.cors_middleware(inner), make_environ(REQUEST_METHOD="GET")
    )
    assert headers["Access-Control-Allow-Origin"] == "https://app.example.com"


def test_cors_middleware_v2_echoes_origin():
    inner = Recorder()
    environ = make_environ(HTTP_ORIGIN="https://app.example.com")
    _status, headers, body = call(http_middleware.cors_middleware_v2(inner), environ)
    assert headers["Access-Control-Allow-Origin"] == "https://app.example.com"
    assert body == b"inner"


def test_options_joins_methods_and_headers():
    app = http_middleware.options(["GET", "POST"], ["Content-Type", "Authorization"])
    status, headers, body = call(app, make_environ(REQUEST_METHOD="OPTIONS"))
    assert status.startswith("200")
    assert headers["Access-Control-Allow-Methods"] == "GET, POST"
    assert headers["Access-Control-Allow-Headers"] == "Content-Type, Authorization"
    assert body == b""


def test_content_type_accepts_allowed_type():
    inner = Recorder()
    app = http_middleware.content_type(inner, "Application/JSON")
    _status, _headers, body = call(app, make_environ(CONTENT_TYPE="application/json"))
    assert body == b"inner"
    assert len(inner.calls) == 1


def test_content_type_accepts_utf8_parameter():
    inner = Recorder()
    app = http_middleware.content_type(inner, "application/json")
    _status, _headers, body = call(
        app, make_environ(CONTENT_TYPE="application/json; charset=UTF-8")
    )
    assert body == b"inner"


def test_content_type_rejects_other_type():
    inner = Recorder()
    app = http_middleware.content_type(inner, "application/json")
    status, headers, body = call(app, make_environ(CONTENT_TYPE="text/plain"))
    assert status.startswith("415")
    assert body == ERR_RESPONSE_UNSUPPORTED_MEDIA_TYPE
    assert headers["Content-Type"] == "application/json"
    assert inner.calls == []


def test_content_type_rejects_other_parameter():
    inner = Recorder()
    app = http_middleware.content_type(inner, "application/json")
    status, _headers, body = call(
        app, make_environ(CONTENT_TYPE="application/json; charset=latin1")
    )
    assert status.startswith("415")
    assert body == ERR_RESPONSE_UNSUPPORTED_MEDIA_TYPE
    assert inner.calls == []


def test_content_type_rejects_missing_type():
    inner = Recorder()
    app = http_middleware.content_type(inner, "application/json")
    environ = make_environ()
    environ.pop("CONTENT_TYPE", None)
    status, _headers, _body = call(app, environ)
    assert status.startswith("415")
    assert inner.calls == []


def test_recovery_passes_normal_response():
    status, _headers, body = call(http_middleware.recovery(Recorder()), make_environ())
    assert status.startswith("200")
    assert body == b"inner"


def test_recovery_catches_exception_on_call():
    status, headers, body = call(http_middleware.recovery(_broken_on_call), make_environ())
    assert status.startswith("500")
    assert body == ERR_RESPONSE_INTERNAL_SERVER_ERROR
    assert headers["Content-Type"] == "application/json"


def test_recovery_catches_exception_while_iterating():
    status, _headers, body = call(
        http_middleware.recovery(_broken_while_iterating), make_environ()
    )
    assert status.startswith("500")
    assert body == ERR_RESPONSE_INTERNAL_SERVER_ERROR


def test_trailing_slash_removed():
    inner = Recorder()
    call(http_middleware.trailing_slash_middleware(inner), make_environ(PATH_INFO="/users/"))
    assert inner.calls[0]["PATH_INFO"] == "/users"


def test_trailing_slash_root_kept():
    inner = Recorder()
    environ = make_environ(PATH_INFO="/", QUERY_STRING="")
    call(http_middleware.trailing_slash_middleware(inner), environ)
    assert inner.calls[0]["PATH_INFO"] == "/"


def test_trailing_slash_only_one_removed():
    inner = Recorder()
    call(http_middleware.trailing_slash_middleware(inner), make_environ(PATH_INFO="/users//"))
    assert inner.calls[0]["PATH_INFO"] == "/users/"


def test_trailing_slash_without_slash_unchanged():
    inner = Recorder()
    call(http_middleware.trailing_slash_middleware(inner), make_environ(PATH_INFO="/users"))
    assert inner.calls[0]["PATH_INFO"] == "/users"