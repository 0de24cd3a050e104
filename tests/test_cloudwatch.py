import threading
import time

import pytest

from svcutils.cloudwatch import (
    LogEvent,
    LogsData,
    Processor,
    encode_aws_logs,
    parse_aws_logs,
)
from svcutils.datadog_client import DatadogClientError
from svcutils.lambda_messages import LambdaBaseMsg
from svcutils.tags import Tags

SOURCE = "Monkey"


class MockDatadogClient:
    def __init__(self):
        self.log_entries = []
        self._lock = threading.Lock()

    def post_log_entry(self, log_entry):
        with self._lock:
            self.log_entries.append(log_entry)


class FailingClient:
    def post_log_entry(self, log_entry):
        raise DatadogClientError("boom")


def _encoded(log_group, messages):
    events = [
        LogEvent(id=f"id-{index}", timestamp=time.time_ns(), message=message)
        for index, message in enumerate(messages)
    ]
    data = LogsData(log_group=log_group, log_events=events)
    return data, encode_aws_logs(data)


def test_process_valid_request():
    tags = Tags()
    tags.add_tags_as_string("Apa,bepa,cEPA")
    tags.add_tag("apa", "Bepa")
    tags.add_tag("Apa", "bEPA")
    client = MockDatadogClient()

    data, raw = _encoded(
        "/aws/lambda/" + SOURCE,
        [
            "msg",
            '{"msg": "msg", "dd.trace_id": 123, "dd.span_id": 456}',
            "START RequestId: Apa123",
            "MONITORING apa",
        ],
    )

    processor = Processor("keckebarn", client).with_tags(tags)
    processor.process(raw)

    common = {
        "application": "backend",
        "ddsource": "Monkey",
        "ddsourcecategory": "lambda",
        "ddtags": "Apa,bepa,cEPA,apa:Bepa,Apa:bEPA",
        "service": "keckebarn",
    }
    expected = [
        {
            **common,
            "lambda": LambdaBaseMsg(type="message"),
            "message": "msg",
            "timestamp": data.log_events[0].timestamp,
        },
        {
            **common,
            "lambda": LambdaBaseMsg(type="message"),
            "message": "msg",
            "timestamp": data.log_events[1].timestamp,
            "dd.trace_id": 123,
            "dd.span_id": 456,
        },
        {
            **common,
            "lambda": LambdaBaseMsg(type="start", request_id="Apa123"),
            "message": "START RequestId: Apa123",
            "timestamp": data.log_events[2].timestamp,
        },
        "MONITORING apa",
    ]

    assert processor.errors() == []
    assert client.log_entries == expected


def test_encode_and_parse_round_trip():
    data = LogsData(
        owner="123456789012",
        log_group="/aws/lambda/fn",
        log_stream="stream",
        subscription_filters=["filter"],
        message_type="DATA_MESSAGE",
        log_events=[LogEvent(id="a", timestamp=7, message="hello")],
    )
    assert parse_aws_logs(encode_aws_logs(data)) == data


def test_parse_invalid_data_raises():
    with pytest.raises(ValueError):
        parse_aws_logs("not base64!")


def test_unparsable_payload_is_reported():
    client = MockDatadogClient()
    processor = Processor("svc", client)
    processor.process("not base64!")
    errors = processor.errors()
    assert len(errors) == 1
    assert "failed to parse raw AWS logs" in str(errors[0])
    assert client.log_entries == []


def test_empty_messages_are_skipped():
    client = MockDatadogClient()
    _, raw = _encoded("/aws/lambda/fn", ["   ", ""])
    processor = Processor("svc", client)
    processor.process(raw)
    assert client.log_entries == []
    assert processor.errors() == []


def test_invalid_json_message_is_reported_and_others_sent():
    client = MockDatadogClient()
    _, raw = _encoded("/custom/group", ["{not json}", "plain"])
    processor = Processor("svc", client)
    processor.process(raw)
    errors = processor.errors()
    assert len(errors) == 1
    assert "failed to map AWS log event [id-0] to a Datadog log" in str(errors[0])
    assert [entry["message"] for entry in client.log_entries] == ["plain"]


def test_negative_trace_id_is_an_error():
    client = MockDatadogClient()
    _, raw = _encoded("/custom/group", ['{"dd.trace_id": -1, "dd.span_id": 2}'])
    processor = Processor("svc", client)
    processor.process(raw)
    assert len(processor.errors()) == 1
    assert client.log_entries == []


def test_json_application_is_kept():
    client = MockDatadogClient()
    _, raw = _encoded("/custom/group", ['{"application": "frontend", "msg": "x"}'])
    Processor("svc", client).process(raw)
    entry = client.log_entries[0]
    assert entry["application"] == "frontend"
    assert entry["message"] == "x"
    assert "msg" not in entry


def test_ecs_and_cloudwatch_sources():
    client = MockDatadogClient()
    _, raw = _encoded("/aws/ecs/fargate/my-service", ["hello"])
    Processor("svc", client).process(raw)
    _, raw = _encoded("/custom/group", ["hello"])
    Processor("svc", client).process(raw)

    ecs, other = client.log_entries
    assert ecs["ddsource"] == "my-service"
    assert ecs["ddsourcecategory"] == "ecs"
    assert "lambda" not in ecs
    assert other["ddsource"] == "cloudwatch"
    assert other["ddsourcecategory"] == "cloudwatch"
    assert other["ddtags"] == ""


def test_client_failures_are_collected():
    _, raw = _encoded("/aws/lambda/fn", ["one", "two"])
    processor = Processor("svc", FailingClient())
    processor.process(raw)
    errors = processor.errors()
    assert len(errors) == 2
    assert all("to Datadog" in str(error) for error in errors)
    assert isinstance(errors[0].__cause__, DatadogClientError)


def test_cancelled_processing_sends_nothing():
    client = MockDatadogClient()
    _, raw = _encoded("/aws/lambda/fn", ["one", "two"])
    cancel = threading.Event()
    cancel.set()
    processor = Processor("svc", client)
    processor.process(raw, cancel)
    assert client.log_entries == []
    assert processor.errors() == []


def test_many_workers_send_every_event():
    client = MockDatadogClient()
    data, raw = _encoded("/custom/group", [f"message {n}" for n in range(20)])
    processor = Processor("svc", client).with_no_of_workers(4)
    processor.process(raw)
    assert processor.errors() == []
    sent = sorted(entry["timestamp"] for entry in client.log_entries)
    assert sent == sorted(event.timestamp for event in data.log_events)


def test_negative_worker_count_is_rejected():
    with pytest.raises(ValueError):
        Processor("svc", MockDatadogClient()).with_no_of_workers(-1)