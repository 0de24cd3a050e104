"""Thread-safe sign-in that keeps tokens until they are about to expire."""

from __future__ import annotations

import threading
from datetime import timedelta
from typing import Optional

from svcutils import auth

_LATEST = "latest"
_TOKEN_EXPIRE_DURATION_DIFF = timedelta(minutes=5)

_lock = threading.Lock()
_config: Optional[auth.Config] = None
_tokens: dict[str, auth.Tokens] = {}


def configure(conf: auth.Config) -> None:
    """Configure this module and the sign-in it relies on."""
    global _config
    with _lock:
        _config = conf
        auth.configure(conf)


def get_tokens() -> auth.Tokens:
    """Return the tokens of the latest sign-in; they are not refreshed."""
    return get_tokens_by_user(_LATEST)


def get_tokens_by_user(username: str) -> auth.Tokens:
    """Return the cached tokens of ``username``; they are not refreshed."""
    with _lock:
        return _tokens.get(username, auth.Tokens())


def sign_in(username: str, password: str) -> None:
    """Sign in unless the cached access token stays valid for five more minutes."""
    with _lock:
        if _config is None:
            raise auth.AuthError("cachedauth is not configured")

        old_tokens = _tokens.get(username, auth.Tokens())
        if auth.is_token_valid(old_tokens.access_token, _TOKEN_EXPIRE_DURATION_DIFF):
            return

        new_tokens = auth.sign_in(username, password)
        _tokens[username] = new_tokens
        _tokens[_LATEST] = new_tokens