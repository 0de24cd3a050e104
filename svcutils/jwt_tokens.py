"""Verification of RS-signed JWTs against the published key sets."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional

import jwt as pyjwt

from svcutils import jwk

TOKEN_USE_ACCESS = "access"
TOKEN_USE_ID = "id"

_ALGORITHMS = ["RS256", "RS384", "RS512", "PS256", "PS384", "PS512"]
_DECODE_OPTIONS = {
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
}


class TokenError(Exception):
    """Raised when a token cannot be verified or its claims are not valid."""


def _string(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} is not a string")
    return value


def _numeric(data: dict[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} is not a number")
    return float(value)


def _audience(data: dict[str, Any]) -> list[str]:
    value = data.get("aud")
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise ValueError("aud is neither a string nor a list of strings")


@dataclass
class Claims:
    """Registered claims plus the Cognito and Enlight claims of a token."""

    issuer: str = ""
    subject: str = ""
    audience: list[str] = field(default_factory=list)
    expires_at: Optional[float] = None
    not_before: Optional[float] = None
    issued_at: Optional[float] = None
    id: str = ""
    username: str = ""
    token_use: str = ""
    enlight_user_id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Claims:
        """Read claims from a decoded payload; raise ValueError on bad types."""
        if not isinstance(data, dict):
            raise ValueError("claims are not a JSON object")
        return cls(
            issuer=_string(data, "iss"),
            subject=_string(data, "sub"),
            audience=_audience(data),
            expires_at=_numeric(data, "exp"),
            not_before=_numeric(data, "nbf"),
            issued_at=_numeric(data, "iat"),
            id=_string(data, "jti"),
            username=_string(data, "username"),
            token_use=_string(data, "token_use"),
            enlight_user_id=_string(data, "enlightUserId"),
        )

    def validate(self) -> None:
        """Raise TokenError unless the claims are currently valid and complete."""
        now = time.time()
        if self.expires_at is not None and not now < self.expires_at:
            raise TokenError(f"token is expired by {now - self.expires_at:.0f}s")
        if self.issued_at is not None and now < self.issued_at:
            raise TokenError("token used before issued")
        if self.not_before is not None and now < self.not_before:
            raise TokenError("token is not valid yet")

        if self.token_use == TOKEN_USE_ACCESS:
            if not self.username:
                raise TokenError("missing username in claims")
        elif self.token_use == TOKEN_USE_ID:
            if not self.enlight_user_id:
                raise TokenError("missing enlight user ID in claims")
        else:
            raise TokenError(
                f"wrong type of token: {self.token_use}, "
                f"should be {TOKEN_USE_ACCESS} or {TOKEN_USE_ID}"
            )


@dataclass(frozen=True)
class Token:
    """A verified token."""

    raw: str
    header: dict[str, Any]
    claims: Claims
    valid: bool = True


def parse(jwt_token: str) -> Token:
    """Verify ``jwt_token`` with the key named by its ``kid`` and validate its claims."""
    try:
        key_sets = jwk.get_key_sets()
    except jwk.JWKError as exc:
        raise TokenError(f"failed to get key sets: {exc}") from exc

    try:
        header = pyjwt.get_unverified_header(jwt_token)
        key_id = header.get("kid")
        if not isinstance(key_id, str):
            raise TokenError("expecting JWT header to have string `kid`")
        try:
            key_set = key_sets.lookup_key_id(key_id)
        except jwk.JWKError as exc:
            raise TokenError(f"failed to look up key id: {exc}") from exc
        public_key = key_set.get_public_key()
        payload = pyjwt.decode(
            jwt_token, public_key, algorithms=_ALGORITHMS, options=_DECODE_OPTIONS
        )
        claims = Claims.from_dict(payload)
        claims.validate()
    except (TokenError, jwk.JWKError, pyjwt.PyJWTError, ValueError) as exc:
        raise TokenError(f"parse with claims failed: {exc}") from exc

    return Token(raw=jwt_token, header=header, claims=claims)