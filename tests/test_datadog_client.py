import json
import socket
import threading
from unittest import mock

import pytest

from svcutils.datadog_client import DatadogClientError, LogClient, TCPClient
from svcutils.lambda_messages import LambdaBaseMsg


class _FailingConnection:
    def __init__(self):
        self.closed = False

    def sendall(self, data):
        raise BrokenPipeError("broken pipe")

    def close(self):
        self.closed = True


class _RecordingConnection:
    def __init__(self):
        self.sent = []
        self.closed = False

    def sendall(self, data):
        self.sent.append(data)

    def close(self):
        self.closed = True


@pytest.fixture
def line_server():
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    received = []

    def serve():
        conn, _ = listener.accept()
        with conn:
            buffer = b""
            while not buffer.endswith(b"\n"):
                chunk = conn.recv(4096)
                if not chunk:
                    break
                buffer += chunk
            received.append(buffer)

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield listener.getsockname()[1], received, thread
    listener.close()


def test_tcp_client_is_a_log_client():
    client = TCPClient("localhost", "10516", "placeholder", False)
    assert isinstance(client, LogClient)
    assert client.port == "10516"


def test_post_log_entry_writes_api_key_prefixed_json_line(line_server):
    port, received, thread = line_server
    with TCPClient("127.0.0.1", port, "placeholder", False) as client:
        result = client.post_log_entry({"message": "hi", "b": 1})
        thread.join(timeout=5)
    assert result is None
    assert received == [b'placeholder {"b":1,"message":"hi"}\n']


def test_post_string_entry_is_json_string(line_server):
    port, received, thread = line_server
    with TCPClient("127.0.0.1", port, "placeholder", False) as client:
        result = client.post_log_entry("MONITORING apa")
        thread.join(timeout=5)
    assert result is None
    prefix, body = received[0].split(b" ", 1)
    assert prefix == b"placeholder"
    assert body.endswith(b"\n")
    assert json.loads(body) == "MONITORING apa"


def test_html_characters_are_escaped(line_server):
    port, received, thread = line_server
    with TCPClient("127.0.0.1", port, "placeholder", False) as client:
        result = client.post_log_entry({"m": "<a&b>"})
        thread.join(timeout=5)
    assert result is None
    body = received[0].split(b" ", 1)[1]
    assert b"<" not in body and b">" not in body and b"&" not in body
    assert json.loads(body) == {"m": "<a&b>"}


def test_dataclass_values_are_serialised(line_server):
    port, received, thread = line_server
    entry = {"lambda": LambdaBaseMsg(type="start", request_id="Apa123")}
    with TCPClient("127.0.0.1", port, "placeholder", False) as client:
        result = client.post_log_entry(entry)
        thread.join(timeout=5)
    assert result is None
    body = received[0].split(b" ", 1)[1]
    assert json.loads(body) == {"lambda": {"type": "start", "requestId": "Apa123"}}


def test_connect_failure_raises():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    client = TCPClient("127.0.0.1", port, "placeholder", False)
    with pytest.raises(DatadogClientError, match="failed to connect"):
        client.post_log_entry({"message": "hi"})


def test_invalid_port_raises():
    client = TCPClient("127.0.0.1", "not-a-port", "placeholder", False)
    with pytest.raises(DatadogClientError):
        client.connect()


def test_failed_write_is_retried_after_reconnect():
    failing, recording = _FailingConnection(), _RecordingConnection()
    with mock.patch(
        "socket.create_connection", side_effect=[failing, recording]
    ) as create, mock.patch("time.sleep") as sleep:
        client = TCPClient("localhost", "10516", "placeholder", False)
        result = client.post_log_entry({"message": "hello"})
    assert result is None
    assert failing.closed
    assert create.call_count == 2
    assert recording.sent == [b'placeholder {"message":"hello"}\n']
    sleep.assert_called_once_with(0.1)


def test_gives_up_after_max_retries():
    with mock.patch(
        "socket.create_connection", side_effect=lambda *a, **k: _FailingConnection()
    ) as create, mock.patch("time.sleep") as sleep:
        client = TCPClient("localhost", "10516", "placeholder", False).with_max_retries(0)
        with pytest.raises(DatadogClientError):
            client.post_log_entry({"message": "hello"})
    assert create.call_count == 2
    assert sleep.call_count == 1


def test_backoff_is_capped():
    retries = 12
    with mock.patch(
        "socket.create_connection", side_effect=lambda *a, **k: _FailingConnection()
    ), mock.patch("time.sleep") as sleep:
        client = TCPClient("localhost", "10516", "placeholder", False)
        client.with_max_retries(retries)
        with pytest.raises(DatadogClientError):
            client.post_log_entry("x")
    delays = [call.args[0] for call in sleep.call_args_list]
    assert len(delays) == retries + 1
    assert delays == sorted(delays)
    assert max(delays) == 1.0


def test_negative_max_retries_is_ignored():
    client = TCPClient("localhost", "10516", "placeholder", False)
    assert client.with_max_retries(-1) is client
    assert client.max_retries == 2
    client.with_max_retries(5)
    assert client.max_retries == 5


def test_unserialisable_entry_raises():
    with mock.patch("socket.create_connection", return_value=_RecordingConnection()):
        client = TCPClient("localhost", "10516", "placeholder", False)
        with pytest.raises(DatadogClientError, match="marshal"):
            client.post_log_entry({"value": object()})


def test_connect_is_idempotent_and_disconnect_allows_new_connection():
    connections = []

    def open_connection(*args, **kwargs):
        connection = _RecordingConnection()
        connections.append(connection)
        return connection

    with mock.patch("socket.create_connection", side_effect=open_connection):
        client = TCPClient("localhost", "10516", "placeholder", False)
        client.connect()
        client.connect()
        assert len(connections) == 1
        client.disconnect()
        client.disconnect()
        result = client.post_log_entry("again")
    assert result is None
    assert len(connections) == 2
    assert connections[0].closed
    assert connections[0].sent == []
    assert connections[1].sent == [b'placeholder "again"\n']