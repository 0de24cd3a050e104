from svcutils import requestid
from svcutils.requestid import (
    REQUEST_CHAIN_KEY,
    REQUEST_ID_KEY,
    REQUEST_TRANSACTION_ID_KEY,
    Request,
)

KNOWN_ID = "9f220f42-2fa7-46f9-8a25-f3ba17328a13"


def test_extend_nil_context():
    md = requestid.extend_context(None, "Test_ExtendNilContext")
    req = requestid.extract(md)
    assert req.chain == ["Test_ExtendNilContext"]


def test_extend_background_context():
    md = requestid.extend_context({}, "Test_ExtendBackgroundContext")
    req = requestid.extract(md)
    assert req.chain == ["Test_ExtendBackgroundContext"]


def test_extend_extended_context():
    md1 = requestid.extend_context(None, "Test_ExtendExtendedContext_1")
    md2 = requestid.outgoing_with_request_id(md1, "Test_ExtendExtendedContext_2")
    req = requestid.extract(md2)
    assert req.chain == ["Test_ExtendExtendedContext_1"]


def test_extend_new_request_uses_transaction_id_as_id():
    req = requestid.extract(requestid.extend_context(None, "svc"))
    assert req.id.is_valid()
    assert req.id == req.transaction_id


def test_extend_keeps_valid_incoming_id_and_appends_chain():
    incoming = [
        (REQUEST_ID_KEY, KNOWN_ID),
        (REQUEST_CHAIN_KEY, "first"),
        (REQUEST_CHAIN_KEY, "second"),
        (REQUEST_TRANSACTION_ID_KEY, KNOWN_ID),
    ]
    req = requestid.extract(requestid.extend_context(incoming, "third"))
    assert req.id == KNOWN_ID
    assert req.chain == ["first", "second", "third"]
    assert req.transaction_id.is_valid()
    assert req.transaction_id != KNOWN_ID


def test_extend_replaces_invalid_incoming_id():
    req = requestid.extract(requestid.extend_context({REQUEST_ID_KEY: "not-a-uuid"}, "svc"))
    assert req.id.is_valid()
    assert req.id == req.transaction_id


def test_outgoing_keeps_ids_from_metadata():
    md = requestid.outgoing_with_request_id(
        {REQUEST_ID_KEY: KNOWN_ID, REQUEST_TRANSACTION_ID_KEY: KNOWN_ID, REQUEST_CHAIN_KEY: ["a"]},
        "b",
    )
    req = requestid.extract(md)
    assert req.id == KNOWN_ID
    assert req.transaction_id == KNOWN_ID
    assert req.chain == ["a"]


def test_outgoing_without_metadata_starts_chain():
    req = requestid.extract(requestid.outgoing_with_request_id(None, "svc"))
    assert req.chain == ["svc"]
    assert req.id == req.transaction_id


def test_extract_none_is_empty():
    assert requestid.extract(None) == Request()


def test_extract_ignores_invalid_ids():
    req = requestid.extract({REQUEST_ID_KEY: "bad", REQUEST_TRANSACTION_ID_KEY: "worse"})
    assert req.id == ""
    assert req.transaction_id == ""
    assert req.chain == []


def test_extract_keys_are_case_insensitive():
    req = requestid.extract([("Request.ID", KNOWN_ID)])
    assert req.id == KNOWN_ID


def test_metadata_shape():
    md = requestid.extend_context(None, "svc")
    keys = [key for key, _ in md]
    assert keys == [REQUEST_ID_KEY, REQUEST_CHAIN_KEY, REQUEST_TRANSACTION_ID_KEY]


def test_request_to_dict():
    req = Request(id=KNOWN_ID, chain=["a", "b"], transaction_id=KNOWN_ID)
    assert req.to_dict() == {"id": KNOWN_ID, "chain": ["a", "b"], "transactionId": KNOWN_ID}