"""Parsing of the START, END and REPORT lines written by AWS Lambda."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

_START_PATTERN = re.compile(r"^START RequestId:\W+([\d\w-]+)", re.ASCII)
_END_PATTERN = re.compile(r"^END RequestId:\W+([\d\w-]+)\W*\Z", re.ASCII)
_REPORT_PATTERN = re.compile(
    r"^REPORT RequestId:\W+([\d\w-]+)\W+Duration:\W+(\d+\.?\d*)\W+(\w+)"
    r"\W+Billed Duration:\W+(\d+)\W+(\w+)\W+Memory Size:\W+(\d+)\W+(\w+)"
    r"\W+Max Memory Used:\W+(\d+)\W+(\w+)\W*\Z",
    re.ASCII,
)


@dataclass(frozen=True)
class LambdaBaseMsg:
    """A Lambda message with its kind and request id."""

    type: str
    request_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the message as a JSON-ready dict."""
        return {"type": self.type, "requestId": self.request_id}


@dataclass(frozen=True)
class LambdaReportMsg(LambdaBaseMsg):
    """A Lambda REPORT message with duration and memory figures."""

    duration: str = ""
    duration_unit: str = ""
    billed_duration: str = ""
    billed_duration_unit: str = ""
    memory_size: str = ""
    memory_size_unit: str = ""
    max_memory_used: str = ""
    max_memory_used_unit: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the message as a JSON-ready dict."""
        return {
            **super().to_dict(),
            "duration": self.duration,
            "durationUnit": self.duration_unit,
            "billedDuration": self.billed_duration,
            "billedDurationUnit": self.billed_duration_unit,
            "memorySize": self.memory_size,
            "memorySizeUnit": self.memory_size_unit,
            "maxMemoryUsed": self.max_memory_used,
            "maxMemoryUsedUnit": self.max_memory_used_unit,
        }


def _parse_start(msg: str) -> LambdaBaseMsg | None:
    match = _START_PATTERN.match(msg)
    return LambdaBaseMsg(type="start", request_id=match.group(1)) if match else None


def _parse_end(msg: str) -> LambdaBaseMsg | None:
    match = _END_PATTERN.match(msg)
    return LambdaBaseMsg(type="end", request_id=match.group(1)) if match else None


def _parse_report(msg: str) -> LambdaReportMsg | None:
    match = _REPORT_PATTERN.match(msg)
    if match is None:
        return None
    (request_id, duration, duration_unit, billed, billed_unit,
     memory, memory_unit, max_used, max_used_unit) = match.groups()
    return LambdaReportMsg(
        type="report",
        request_id=request_id,
        duration=duration,
        duration_unit=duration_unit,
        billed_duration=billed,
        billed_duration_unit=billed_unit,
        memory_size=memory,
        memory_size_unit=memory_unit,
        max_memory_used=max_used,
        max_memory_used_unit=max_used_unit,
    )


def parse(msg: str) -> Union[LambdaBaseMsg, LambdaReportMsg, None]:
    """Parse a Lambda START, END or REPORT line; return None for anything else."""
    if msg.startswith("START"):
        return _parse_start(msg)
    if msg.startswith("END"):
        return _parse_end(msg)
    if msg.startswith("REPORT"):
        return _parse_report(msg)
    return None