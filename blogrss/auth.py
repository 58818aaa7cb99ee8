"""Reading the API key from request headers."""

from __future__ import annotations

from typing import Mapping


class AuthError(ValueError):
    """The request carries no usable API key."""


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        value = next((v for k, v in headers.items() if k.lower() == lowered), None)
    return value or ""


def get_api_key(headers: Mapping[str, str]) -> str:
    """Return the key from an ``Authorization: ApiKey <key>`` header."""
    value = _header(headers, "Authorization")
    if not value:
        raise AuthError("no authentication info found")
    parts = value.split(" ")
    if len(parts) != 2 or parts[0] != "ApiKey":
        raise AuthError("incorrect auth header")
    return parts[1]