"""Set-like helpers for lists of strings."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable


def _count_occurrences(arrays: tuple[Iterable[str], ...]) -> Counter[str]:
    """Count in how many of the given arrays each distinct value occurs."""
    counts: Counter[str] = Counter()
    for arr in arrays:
        counts.update(distinct_string(arr))
    return counts


def merge_string(*arrays: Iterable[str]) -> list[str]:
    """Concatenate all arrays, keeping duplicates and order."""
    return [value for arr in arrays for value in arr]


def distinct_string(arr: Iterable[str]) -> list[str]:
    """Return the distinct values of ``arr``."""
    return list(dict.fromkeys(arr))


def intersect_string(*arrays: Iterable[str]) -> list[str]:
    """Return the values present in every one of the arrays."""
    wanted = len(arrays)
    return [value for value, count in _count_occurrences(arrays).items() if count == wanted]


def difference_string(*arrays: Iterable[str]) -> list[str]:
    """Return the values present in exactly one of the arrays."""
    return [value for value, count in _count_occurrences(arrays).items() if count == 1]


def contains_string(arr: Iterable[str], string_to_check: str) -> bool:
    """Tell whether ``string_to_check`` is one of the values of ``arr``."""
    return any(value == string_to_check for value in arr)


def contains_empty(*values: str) -> bool:
    """Tell whether any value is empty or only whitespace."""
    return any(not value.strip() for value in values)