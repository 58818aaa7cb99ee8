"""The HTTP API and the command that serves it."""

from __future__ import annotations

import argparse
import functools
import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable
from uuid import UUID, uuid4

from dotenv import load_dotenv
from flask import Flask, Response, request

from .auth import AuthError, get_api_key
from .database import Database, DatabaseError
from .models import (
    feed_follow_to_json,
    feed_follows_to_json,
    feed_to_json,
    feeds_to_json,
    posts_to_json,
    user_to_json,
    user_to_public_json,
)
from .responses import respond_with_error, respond_with_json
from .scraper import scrape_forever

log = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
POSTS_LIMIT = 10
SCRAPE_CONCURRENCY = 10
SCRAPE_INTERVAL = 60.0

_ALLOWED_ORIGIN_PREFIXES = ("http://", "https://")
_ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "OPTIONS"})
_EXPOSED_HEADERS = "Link"
_MAX_AGE = "300"
_JSON_WHITESPACE = " \t\r\n"


class _DecodeError(ValueError):
    """A request body could not be read into the expected parameters."""


def _kind(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _as_string(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise _DecodeError(f"cannot unmarshal {_kind(value)} into field {name} of type string")
    return value


def _as_uuid(name: str, value: Any) -> UUID:
    if not isinstance(value, str):
        raise _DecodeError(f"cannot unmarshal {_kind(value)} into field {name} of type uuid")
    try:
        return UUID(value)
    except ValueError:
        raise _DecodeError(f"invalid UUID {value!r}") from None


def _reject_constant(name: str) -> Any:
    raise _DecodeError(f"invalid character '{name[0]}' looking for beginning of value")


_STRING = (_as_string, "")
_UUID = (_as_uuid, UUID(int=0))


def _decode(data: bytes, fields: dict[str, tuple[Callable[[str, Any], Any], Any]]) -> dict:
    """Read the first JSON value of a body into the named fields.

    Keys match field names without regard to case, unknown keys are ignored,
    nulls and missing keys leave a field at its default.
    """
    text = data.decode("utf-8", errors="replace").lstrip(_JSON_WHITESPACE)
    if not text:
        raise _DecodeError("EOF")
    decoder = json.JSONDecoder(parse_constant=_reject_constant)
    try:
        value, _ = decoder.raw_decode(text)
    except _DecodeError:
        raise
    except ValueError as exc:
        raise _DecodeError(str(exc)) from None

    params = {name: default for name, (_, default) in fields.items()}
    if value is None:
        return params
    if not isinstance(value, dict):
        raise _DecodeError(f"cannot unmarshal {_kind(value)} into parameters")
    by_lower = {name.lower(): name for name in fields}
    for key, item in value.items():
        name = by_lower.get(key.lower())
        if name is None or item is None:
            continue
        convert, _ = fields[name]
        params[name] = convert(name, item)
    return params


def _origin_allowed(origin: str) -> bool:
    return origin.lower().startswith(_ALLOWED_ORIGIN_PREFIXES)


def _is_preflight() -> bool:
    return request.method == "OPTIONS" and bool(
        request.headers.get("Access-Control-Request-Method")
    )


def _preflight() -> Response:
    response = Response(b"", status=200)
    for name in ("Origin", "Access-Control-Request-Method", "Access-Control-Request-Headers"):
        response.headers.add("Vary", name)
    origin = request.headers.get("Origin", "")
    method = request.headers.get("Access-Control-Request-Method", "").upper()
    if not origin or not _origin_allowed(origin) or method not in _ALLOWED_METHODS:
        return response
    response.headers["Access-Control-Allow-Origin"] = origin
    response.headers["Access-Control-Allow-Methods"] = method
    requested = request.headers.get("Access-Control-Request-Headers")
    if requested:
        response.headers["Access-Control-Allow-Headers"] = requested
    response.headers["Access-Control-Max-Age"] = _MAX_AGE
    return response


def _add_cors_headers(response: Response) -> Response:
    if _is_preflight():
        return response
    response.headers.add("Vary", "Origin")
    origin = request.headers.get("Origin", "")
    if origin and _origin_allowed(origin) and request.method.upper() in _ALLOWED_METHODS:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Expose-Headers"] = _EXPOSED_HEADERS
    return response


def create_app(db: Database) -> Flask:
    """The API application, serving under ``/api/v1`` from ``db``."""
    app = Flask(__name__)

    @app.before_request
    def handle_preflight():
        if _is_preflight():
            return _preflight()
        return None

    app.after_request(_add_cors_headers)

    def authed(handler):
        @functools.wraps(handler)
        def wrapper(**kwargs):
            try:
                api_key = get_api_key(request.headers)
            except AuthError as exc:
                return respond_with_error(403, f"Auth error:{exc}")
            try:
                user = db.get_user_by_api_key(api_key)
            except DatabaseError as exc:
                return respond_with_error(403, f"Auth error:{exc}")
            return handler(user, **kwargs)

        return wrapper

    @app.get(f"{API_PREFIX}/ready")
    def readiness():
        return respond_with_json(200, {})

    @app.get(f"{API_PREFIX}/err")
    def error():
        return respond_with_error(400, "Something went wrong")

    @app.post(f"{API_PREFIX}/user")
    def create_user():
        try:
            params = _decode(
                request.get_data(),
                {"name": _STRING, "email": _STRING, "password": _STRING},
            )
        except _DecodeError as exc:
            return respond_with_error(400, f"Error while decoding: {exc}")
        now = datetime.now(timezone.utc)
        try:
            user = db.create_user(
                uuid4(), now, now, params["name"], params["email"], params["password"]
            )
        except DatabaseError as exc:
            return respond_with_error(400, f"Error while creating user: {exc}")
        return respond_with_json(201, user_to_json(user))

    @app.get(f"{API_PREFIX}/user")
    @authed
    def get_user(user):
        return respond_with_json(200, user_to_public_json(user))

    @app.post(f"{API_PREFIX}/feed")
    @authed
    def create_feed(user):
        try:
            params = _decode(request.get_data(), {"url": _STRING, "name": _STRING})
        except _DecodeError as exc:
            return respond_with_error(400, f"Error while decoding: {exc}")
        now = datetime.now(timezone.utc)
        try:
            feed = db.create_feed(uuid4(), now, now, params["name"], params["url"], user.id)
        except DatabaseError as exc:
            return respond_with_error(400, f"Error while creating user: {exc}")
        return respond_with_json(200, feed_to_json(feed))

    @app.get(f"{API_PREFIX}/feed/all")
    def get_feeds():
        try:
            feeds = db.get_feeds()
        except DatabaseError as exc:
            return respond_with_error(400, f"Couldn't get feeds:{exc}")
        return respond_with_json(200, feeds_to_json(feeds))

    @app.post(f"{API_PREFIX}/user/feed/follow")
    @authed
    def create_feed_follow(user):
        try:
            params = _decode(request.get_data(), {"feedId": _UUID})
        except _DecodeError as exc:
            return respond_with_error(400, f"Error while decoding: {exc}")
        now = datetime.now(timezone.utc)
        try:
            follow = db.create_feed_follow(uuid4(), now, now, user.id, params["feedId"])
        except DatabaseError as exc:
            return respond_with_error(400, f"Error while creating feed follow: {exc}")
        return respond_with_json(200, feed_follow_to_json(follow))

    @app.get(f"{API_PREFIX}/user/feed/follows/all")
    @authed
    def get_feed_follows(user):
        try:
            follows = db.get_feed_follows(user.id)
        except DatabaseError as exc:
            return respond_with_error(400, f"Couldn't get feed follows:{exc}")
        return respond_with_json(200, feed_follows_to_json(follows))

    @app.delete(f"{API_PREFIX}/user/feed/follow/<feed_follow_id>")
    @authed
    def delete_feed_follow(user, feed_follow_id):
        try:
            follow_id = UUID(feed_follow_id)
        except ValueError as exc:
            return respond_with_error(400, f"Couldn't parse feed follow id:{exc}")
        try:
            db.delete_feed_follow(follow_id, user.id)
        except DatabaseError as exc:
            return respond_with_error(400, f"Couldn't delete feed follow:{exc}")
        return respond_with_json(200, {})

    @app.get(f"{API_PREFIX}/user/posts")
    @authed
    def get_posts_for_user(user):
        try:
            posts = db.get_posts_for_user(user.id, POSTS_LIMIT)
        except DatabaseError as exc:
            return respond_with_error(400, f"Issue getting user posts:{exc}")
        return respond_with_json(200, posts_to_json(posts))

    return app


def _database_path(url: str) -> str:
    prefix = "sqlite:///"
    return url[len(prefix):] if url.startswith(prefix) else url


def main(argv=None) -> None:
    """Read settings from ``.env``, start the scraper and serve the API."""
    parser = argparse.ArgumentParser(
        prog="blogrss",
        description="Serve the RSS aggregator API using PORT and DATABASE_URL from .env.",
    )
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    if not Path(".env").is_file():
        raise SystemExit("Cannot find .env file")
    load_dotenv(".env")

    port = os.environ.get("PORT", "")
    if not port:
        raise SystemExit("PORT not found in .env file")
    database_url = os.environ.get("DATABASE_URL", "")
    if not database_url:
        raise SystemExit("DATABASE_URL not found in .env file")
    try:
        port_number = int(port)
    except ValueError:
        raise SystemExit(f"invalid PORT: {port}") from None

    try:
        db = Database(_database_path(database_url))
    except DatabaseError as exc:
        raise SystemExit(f"Error while connecting to database {exc}") from exc

    stop = threading.Event()
    scraper = threading.Thread(
        target=scrape_forever,
        args=(db, SCRAPE_CONCURRENCY, SCRAPE_INTERVAL),
        kwargs={"stop": stop},
        daemon=True,
    )
    scraper.start()
    try:
        create_app(db).run(host="0.0.0.0", port=port_number)
    except OSError as exc:
        raise SystemExit(str(exc)) from exc
    finally:
        stop.set()
        scraper.join(timeout=5)
        db.close()