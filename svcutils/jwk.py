"""JSON Web Key sets fetched from a URL and turned into RSA public keys."""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass, field
from typing import Any

import requests
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey, RSAPublicNumbers

_RAW_URL_ALPHABET = re.compile(r"[A-Za-z0-9_-]*")
_SMALLEST_EXPONENT_LENGTH = 4


class JWKError(Exception):
    """Raised when key sets cannot be fetched, decoded or searched."""


def _ci_get(data: dict[str, Any], name: str) -> Any:
    """Look up ``name`` exactly, else case-insensitively."""
    if name in data:
        return data[name]
    lowered = name.lower()
    for key, value in data.items():
        if key.lower() == lowered:
            return value
    return None


def _ci_string(data: dict[str, Any], name: str) -> str:
    value = _ci_get(data, name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{name} is not a string")
    return value


def _decode_raw_url(text: str) -> bytes:
    if not _RAW_URL_ALPHABET.fullmatch(text) or len(text) % 4 == 1:
        raise ValueError(f"illegal base64 data: {text!r}")
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


@dataclass(frozen=True)
class JWKeySet:
    """One key of a JSON Web Key set."""

    algorithm: str = ""
    exp: str = ""
    key_id: str = ""
    key_type: str = ""
    mod: str = ""
    use: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> JWKeySet:
        if not isinstance(data, dict):
            raise ValueError("key is not a JSON object")
        return cls(
            algorithm=_ci_string(data, "alg"),
            exp=_ci_string(data, "e"),
            key_id=_ci_string(data, "kid"),
            key_type=_ci_string(data, "kty"),
            mod=_ci_string(data, "n"),
            use=_ci_string(data, "use"),
        )

    def get_public_key(self) -> RSAPublicKey:
        """Build the RSA public key from the base64url exponent and modulus."""
        try:
            decoded_e = _decode_raw_url(self.exp)
        except ValueError as exc:
            raise JWKError(f"failed to decode key set `exp`: {exc}") from exc
        decoded_e = decoded_e.rjust(_SMALLEST_EXPONENT_LENGTH, b"\0")
        exponent = int.from_bytes(decoded_e[:_SMALLEST_EXPONENT_LENGTH], "big")

        try:
            decoded_n = _decode_raw_url(self.mod)
        except ValueError as exc:
            raise JWKError(f"failed to decode key set `mod`: {exc}") from exc
        modulus = int.from_bytes(decoded_n, "big")

        try:
            return RSAPublicNumbers(exponent, modulus).public_key()
        except ValueError as exc:
            raise JWKError(f"invalid RSA public key: {exc}") from exc


class JWKeySets(list):
    """A list of keys that can be searched by key id."""

    def _find(self, key_id: str) -> JWKeySet | None:
        return next((ks for ks in self if ks.key_id == key_id and ks.use == "sig"), None)

    def lookup_key_id(self, key_id: str) -> JWKeySet:
        """Return the signing key with ``key_id``, refreshing the key sets once if absent."""
        found = self._find(key_id)
        if found is not None:
            return found
        refresh_key_sets()
        found = _registry.key_sets._find(key_id)
        if found is not None:
            return found
        raise JWKError("unable to find public key")


@dataclass
class _Registry:
    url: str = ""
    key_sets: JWKeySets = field(default_factory=JWKeySets)


_registry = _Registry()


def set_key_set_url(url: str) -> None:
    """Set the URL the key sets are fetched from."""
    if not isinstance(url, str):
        raise TypeError("key set URL must be a string")
    _registry.url = url


def get_key_sets() -> JWKeySets:
    """Return the key sets, fetching them first if none are held."""
    if not _registry.key_sets:
        refresh_key_sets()
    return _registry.key_sets


def refresh_key_sets() -> None:
    """Fetch the key sets from the configured URL and replace the held ones."""
    try:
        response = requests.get(_registry.url)
    except requests.RequestException as exc:
        raise JWKError(f"failed to fetch key sets: {exc}") from exc

    with response:
        try:
            document = response.json()
            if document is None:
                keys = None
            elif isinstance(document, dict):
                keys = _ci_get(document, "Keys")
            else:
                raise ValueError("key set document is not a JSON object")
            if keys is not None and not isinstance(keys, list):
                raise ValueError("keys is not a JSON array")
            parsed = JWKeySets(JWKeySet.from_dict(item) for item in keys or [])
        except ValueError as exc:
            raise JWKError(f"failed to unmarshal key sets: {exc}") from exc

    _registry.key_sets = parsed