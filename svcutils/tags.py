"""Comma separated tag lists for log entries."""

from __future__ import annotations

from collections.abc import Iterator


class Tags:
    """An ordered list of tags rendered as a comma separated string."""

    def __init__(self) -> None:
        self._data: list[str] = []

    def add_tags_as_string(self, value: str) -> None:
        """Split a comma separated string and add each part as a tag."""
        self._data.extend(value.strip().split(","))

    def add_tag(self, key: str, value: str) -> None:
        """Add a ``key:value`` tag when both key and value are non-empty."""
        if key and value:
            self._data.append(f"{key}:{value}")

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __str__(self) -> str:
        return ",".join(self._data)