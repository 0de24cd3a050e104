"""Request ids, call chains and transaction ids carried in call metadata.

Metadata is given either as a mapping of key to value(s) or as a sequence
of ``(key, value)`` pairs, the form gRPC uses; results are ``(key, value)``
pairs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from svcutils import uuids
from svcutils.uuids import UUID

REQUEST_ID_KEY = "request.id"
REQUEST_CHAIN_KEY = "request.chain"
REQUEST_TRANSACTION_ID_KEY = "request.transaction.id"

Metadata = Union[Mapping[str, Any], Iterable[tuple[str, Any]]]


@dataclass
class Request:
    """The request id metadata of a call."""

    id: UUID = UUID("")
    chain: list[str] = field(default_factory=list)
    transaction_id: UUID = UUID("")

    def to_dict(self) -> dict[str, Any]:
        return {"id": str(self.id), "chain": list(self.chain), "transactionId": str(self.transaction_id)}


def _normalize(metadata: Metadata) -> dict[str, list[str]]:
    items = metadata.items() if isinstance(metadata, Mapping) else metadata
    result: dict[str, list[str]] = {}
    for key, value in items:
        values = result.setdefault(key.lower(), [])
        if isinstance(value, (list, tuple)):
            values.extend(value)
        else:
            values.append(value)
    return result


def _valid_first(values: list[str]) -> Optional[UUID]:
    if not values:
        return None
    candidate = UUID(values[0])
    return candidate if candidate.is_valid() else None


def _to_metadata(request: Request) -> tuple[tuple[str, str], ...]:
    return (
        (REQUEST_ID_KEY, str(request.id)),
        *((REQUEST_CHAIN_KEY, link) for link in request.chain),
        (REQUEST_TRANSACTION_ID_KEY, str(request.transaction_id)),
    )


def extend_context(
    incoming_metadata: Optional[Metadata], service_name: str
) -> tuple[tuple[str, str], ...]:
    """Build outgoing metadata for a call received with ``incoming_metadata``.

    A valid incoming request id is kept, ``service_name`` is appended to the
    chain and a new transaction id is started.
    """
    transaction_id = uuids.new()
    request = Request(id=transaction_id, chain=[service_name], transaction_id=transaction_id)

    if incoming_metadata is not None:
        md = _normalize(incoming_metadata)
        request_id = _valid_first(md.get(REQUEST_ID_KEY, []))
        if request_id is not None:
            request.id = request_id
        request.chain = [*md.get(REQUEST_CHAIN_KEY, []), service_name]

    return _to_metadata(request)


def outgoing_with_request_id(
    outgoing_metadata: Optional[Metadata], service_name: str
) -> tuple[tuple[str, str], ...]:
    """Build metadata for an outgoing call, keeping ids and chain already present."""
    transaction_id = uuids.new()
    request = Request(id=transaction_id, chain=[service_name], transaction_id=transaction_id)

    if outgoing_metadata is not None:
        md = _normalize(outgoing_metadata)
        request_id = _valid_first(md.get(REQUEST_ID_KEY, []))
        if request_id is not None:
            request.id = request_id
        existing_transaction = _valid_first(md.get(REQUEST_TRANSACTION_ID_KEY, []))
        if existing_transaction is not None:
            request.transaction_id = existing_transaction
        request.chain = list(md.get(REQUEST_CHAIN_KEY, []))

    return _to_metadata(request)


def extract(metadata: Optional[Metadata]) -> Request:
    """Read the request id metadata; invalid or missing ids are left empty."""
    request = Request()
    if metadata is None:
        return request

    md = _normalize(metadata)
    request_id = _valid_first(md.get(REQUEST_ID_KEY, []))
    if request_id is not None:
        request.id = request_id
    transaction_id = _valid_first(md.get(REQUEST_TRANSACTION_ID_KEY, []))
    if transaction_id is not None:
        request.transaction_id = transaction_id
    request.chain = list(md.get(REQUEST_CHAIN_KEY, []))
    return request