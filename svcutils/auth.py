"""Sign-in against the SSO API and local checks of token lifetimes."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field, fields
from datetime import timedelta
from typing import Any, Optional, Union

import jwt
import requests

STAGE_PROD = "prod"
DEFAULT_DOMAIN = "users.enlight.example.com"

_INITIATE_ENDPOINT = "/sign-in/initiate"
_COMPLETE_ENDPOINT = "/sign-in/complete"

Duration = Union[float, int, timedelta]


class AuthError(Exception):
    """Raised when signing in fails or the module is not configured."""


@dataclass(frozen=True)
class Config:
    """Where to sign in: the deployment stage and the domain of the SSO service."""

    stage: str
    domain: str = DEFAULT_DOMAIN


def _object(value: Any, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{name} is not a JSON object")
    return value


def _string(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} is not a string")
    return value


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass(frozen=True)
class Tokens:
    """The tokens handed out on a successful sign-in."""

    access_token: str = ""
    identity_token: str = ""
    refresh_token: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Tokens:
        data = _object(data, "tokens")
        return cls(**{f.name: _string(data, _camel(f.name)) for f in fields(cls)})


@dataclass(frozen=True)
class Challenge:
    """A challenge the user must answer to complete a sign-in."""

    id: str = ""
    type: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Challenge:
        data = _object(data, "challenge")
        return cls(id=_string(data, "id"), type=_string(data, "type"))


@dataclass(frozen=True)
class SignInResponse:
    """The body of a sign-in response."""

    tokens: Tokens = field(default_factory=Tokens)
    challenge: Challenge = field(default_factory=Challenge)

    @classmethod
    def from_dict(cls, data: Any) -> SignInResponse:
        """Build a response from decoded JSON; raise ValueError on a bad shape."""
        inner = _object(_object(data, "response").get("data"), "data")
        return cls(
            tokens=Tokens.from_dict(inner.get("tokens")),
            challenge=Challenge.from_dict(inner.get("challenge")),
        )


@dataclass
class _Settings:
    config: Optional[Config] = None


_settings = _Settings()


def configure(conf: Optional[Config]) -> None:
    """Set the configuration used by sign-in; ``None`` unconfigures the module."""
    if conf is not None and not isinstance(conf, Config):
        raise TypeError("conf must be a Config or None")
    _settings.config = conf


def get_base_url() -> str:
    """Return the base URL of the SSO API for the configured stage."""
    config = _settings.config
    if config is None:
        raise AuthError("auth is not configured")
    if config.stage == STAGE_PROD:
        return f"https://sso-api.{config.domain}"
    return f"https://sso-api.{config.stage}.{config.domain}"


def _post(endpoint: str, body: dict[str, Any]) -> SignInResponse:
    try:
        base_url = get_base_url()
    except AuthError as exc:
        raise AuthError(f"failed to get base URL: {exc}") from exc

    try:
        response = requests.post(
            base_url + endpoint,
            data=json.dumps(body),
            headers={"Content-Type": "application/json"},
        )
    except requests.RequestException as exc:
        raise AuthError(f"failed to execute HTTP request: {exc}") from exc

    with response:
        if response.status_code != 200:
            try:
                error = _object(_object(response.json(), "response").get("error"), "error")
                message = _string(error, "message")
            except ValueError as exc:
                raise AuthError(f"failed to decode Error response to JSON: {exc}") from exc
            raise AuthError(
                f"StatusCode: {response.status_code} {response.reason}, "
                f"Error Message: {message}"
            )
        try:
            return SignInResponse.from_dict(response.json())
        except ValueError as exc:
            raise AuthError(f"failed to decode Sign In response to JSON: {exc}") from exc


def sign_in(username: str, password: str) -> Tokens:
    """Sign the user in, answering a change-password challenge if one is posed."""
    try:
        response = _post(_INITIATE_ENDPOINT, {"username": username, "password": password})
    except AuthError as exc:
        raise AuthError(f"failed to initiate sign in: {exc}") from exc

    if not response.challenge.type:
        return response.tokens

    body = {
        "username": username,
        "id": response.challenge.id,
        "type": response.challenge.type,
        "properties": {"newPassword": password},
    }
    try:
        response = _post(_COMPLETE_ENDPOINT, body)
    except AuthError as exc:
        raise AuthError(f"failed to complete sign in: {exc}") from exc
    return response.tokens


def _seconds(value: Duration) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


def _numeric(claims: dict[str, Any], key: str) -> Optional[float]:
    value = claims.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} is not a number")
    return float(value)


def is_token_valid(token: str, expire_duration_diff: Duration) -> bool:
    """Tell whether ``token`` is in its validity window and will not expire
    within ``expire_duration_diff``. The signature is not checked."""
    if not token:
        return False
    try:
        claims = jwt.decode(
            token,
            options={
                "verify_signature": False,
                "verify_exp": False,
                "verify_nbf": False,
                "verify_iat": False,
                "verify_aud": False,
                "verify_iss": False,
            },
        )
        expires_at = _numeric(claims, "exp")
        issued_at = _numeric(claims, "iat")
        not_before = _numeric(claims, "nbf")
    except (jwt.PyJWTError, ValueError):
        return False

    now = time.time()
    if expires_at is not None and now > expires_at - _seconds(expire_duration_diff):
        return False
    if issued_at is not None and now < issued_at:
        return False
    if not_before is not None and now < not_before:
        return False
    return True