"""Building JSON responses for the HTTP API."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from flask import Response

log = logging.getLogger(__name__)

# Characters escaped in the JSON output so that it can be embedded in HTML
# safely. Lone surrogates cannot be encoded and become the replacement character.
_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}
_ESCAPE_RE = re.compile("[<>&\u2028\u2029\ud800-\udfff]")


def _escape(match: re.Match) -> str:
    return _ESCAPES.get(match.group(), "\ufffd")


def _encode(payload: Any) -> bytes:
    text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    return _ESCAPE_RE.sub(_escape, text).encode("utf-8")


def respond_with_json(code: int, payload: Any) -> Response:
    """Serialise ``payload`` as compact JSON; an empty 500 if it cannot be."""
    try:
        data = _encode(payload)
    except (TypeError, ValueError):
        log.error("Failed to marshal response: %r", payload)
        return Response(b"", status=500)
    return Response(data, status=code, mimetype="application/json")


def respond_with_error(code: int, message: str) -> Response:
    """A JSON body of the form ``{"error": message}``; server errors are logged."""
    if code > 499:
        log.error("Responding with err %s", message)
    return respond_with_json(code, {"error": message})