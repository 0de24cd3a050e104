"""Typed access to environment variables with defaults."""

from __future__ import annotations

import os
import re

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT_MIN = -(2**63)
_INT_MAX = 2**63 - 1
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class EnvError(Exception):
    """Raised when a variable is missing or cannot be parsed."""


def _lookup(variable_name: str) -> str:
    return os.environ.get(variable_name, "")


def must_get_as_string(variable_name: str) -> str:
    """Return the variable's value; raise EnvError if it is unset or empty."""
    value = _lookup(variable_name)
    if not value:
        raise EnvError(f"System variable {variable_name} not set")
    return value


def get_as_string(variable_name: str, default_value: str) -> str:
    """Return the variable's value, or the default if it is unset or empty."""
    return _lookup(variable_name) or default_value


def get_as_float(variable_name: str, default_value: float) -> float:
    """Return the variable as a float, or the default if it is unset or empty."""
    text = _lookup(variable_name)
    if not text:
        return default_value
    if text != text.strip() or "_" in text:
        raise EnvError(f"Failed to parse string {text} to float")
    try:
        return float(text)
    except ValueError as exc:
        raise EnvError(f"Failed to parse string {text} to float - {exc}") from exc


def get_as_int(variable_name: str, default_value: int) -> int:
    """Return the variable as an int, or the default if it is unset or empty."""
    text = _lookup(variable_name)
    if not text:
        return default_value
    if not _INT_PATTERN.fullmatch(text):
        raise EnvError(f"Failed to parse string {text} to int")
    value = int(text)
    if not _INT_MIN <= value <= _INT_MAX:
        raise EnvError(f"Failed to parse string {text} to int - value out of range")
    return value


def get_as_bool(variable_name: str, default_value: bool) -> bool:
    """Return the variable as a bool, or the default if it is unset or empty."""
    text = _lookup(variable_name)
    if not text:
        return default_value
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise EnvError(f"Failed to parse string {text} to bool")