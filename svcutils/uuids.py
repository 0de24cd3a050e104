"""A string-based UUID type with strict validation."""

from __future__ import annotations

import uuid as _uuid

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_DASH_POSITIONS = (8, 13, 18, 23)
_URN_PREFIX = "urn:uuid:"


def _is_hex(text: str) -> bool:
    return all(char in _HEX_DIGITS for char in text)


def _is_canonical(text: str) -> bool:
    if len(text) != 36:
        return False
    if any(text[pos] != "-" for pos in _DASH_POSITIONS):
        return False
    return _is_hex(text.replace("-", ""))


class UUID(str):
    """A UUID held in its textual form."""

    def is_valid(self) -> bool:
        """Tell whether the text is a well-formed UUID."""
        try:
            self.validate()
        except ValueError:
            return False
        return True

    def validate(self) -> None:
        """Raise ValueError unless the text is a well-formed UUID."""
        text = str.__str__(self)
        length = len(text)
        if length == 36:
            valid = _is_canonical(text)
        elif length == 38:
            valid = text[0] == "{" and text[-1] == "}" and _is_canonical(text[1:-1])
        elif length == 45:
            valid = text[:9].lower() == _URN_PREFIX and _is_canonical(text[9:])
        elif length == 32:
            valid = _is_hex(text)
        else:
            raise ValueError(f"invalid UUID length: {length}")
        if not valid:
            raise ValueError(f"invalid UUID format: {text!r}")


EMPTY_UUID = UUID("00000000-0000-0000-0000-000000000000")


def new() -> UUID:
    """Return a new random UUID."""
    return UUID(str(_uuid.uuid4()))


def is_valid(value: str) -> bool:
    """Tell whether ``value`` is a well-formed UUID."""
    return UUID(value).is_valid()