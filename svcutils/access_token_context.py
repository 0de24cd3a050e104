"""The subject of the access token of the current request, per context."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_subject: ContextVar[str | None] = ContextVar("access_token_subject", default=None)


def current_access_token_subject() -> str | None:
    """Return the access token subject of the current context, if any."""
    return _subject.get()


@contextmanager
def access_token_subject(subject: str) -> Iterator[str]:
    """Make ``subject`` the access token subject for the duration of the block."""
    reset_token = _subject.set(subject)
    try:
        yield subject
    finally:
        _subject.reset(reset_token)