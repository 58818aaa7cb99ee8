"""SQLite storage for users, feeds, feed follows and posts."""

from __future__ import annotations

import hashlib
import secrets
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional, Sequence
from uuid import UUID

from .records import Feed, FeedFollow, Post, User

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    password TEXT NOT NULL,
    api_key TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS feeds (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    name TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    last_fetched_at TEXT
);
CREATE TABLE IF NOT EXISTS feed_follows (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    feed_id TEXT NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
    UNIQUE (user_id, feed_id)
);
CREATE TABLE IF NOT EXISTS posts (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    published_at TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    feed_id TEXT NOT NULL REFERENCES feeds(id) ON DELETE CASCADE
);
"""

_USER_COLUMNS = "id, created_at, updated_at, name, email, password, api_key"
_FEED_COLUMNS = "id, created_at, updated_at, name, url, user_id, last_fetched_at"
_FOLLOW_COLUMNS = "id, created_at, updated_at, user_id, feed_id"
_POST_COLUMNS = (
    "posts.id, posts.created_at, posts.updated_at, posts.title, "
    "posts.description, posts.published_at, posts.url, posts.feed_id"
)


class DatabaseError(Exception):
    """A query failed."""


class NotFoundError(DatabaseError):
    """A query that must return a row returned none."""


class DuplicateKeyError(DatabaseError):
    """An insert collided with a unique constraint."""


def _stamp(value: datetime) -> str:
    """Store times as UTC ISO strings so that text order is time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _time(text: Optional[str]) -> Optional[datetime]:
    return None if text is None else datetime.fromisoformat(text)


def _user(row: Sequence) -> User:
    return User(UUID(row[0]), _time(row[1]), _time(row[2]), row[3], row[4], row[5], row[6])


def _feed(row: Sequence) -> Feed:
    return Feed(
        UUID(row[0]), _time(row[1]), _time(row[2]), row[3], row[4], UUID(row[5]), _time(row[6])
    )


def _follow(row: Sequence) -> FeedFollow:
    return FeedFollow(UUID(row[0]), _time(row[1]), _time(row[2]), UUID(row[3]), UUID(row[4]))


def _post(row: Sequence) -> Post:
    return Post(
        UUID(row[0]),
        _time(row[1]),
        _time(row[2]),
        row[3],
        row[4],
        _time(row[5]),
        row[6],
        UUID(row[7]),
    )


def _new_api_key() -> str:
    return hashlib.sha256(secrets.token_bytes(32)).hexdigest()


class Database:
    """Queries over a SQLite database; safe to share between threads."""

    def __init__(self, path):
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(str(path), check_same_thread=False)
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise DatabaseError(str(exc)) from exc

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.IntegrityError as exc:
                if "UNIQUE" in str(exc):
                    raise DuplicateKeyError(
                        f"duplicate key value violates unique constraint: {exc}"
                    ) from exc
                raise DatabaseError(str(exc)) from exc
            except sqlite3.Error as exc:
                raise DatabaseError(str(exc)) from exc

    @staticmethod
    def _one(conn: sqlite3.Connection, sql: str, params: Sequence) -> Sequence:
        row = conn.execute(sql, params).fetchone()
        if row is None:
            raise NotFoundError("no rows in result set")
        return row

    # users

    def create_user(self, user_id, created_at, updated_at, name, email, password) -> User:
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO users ({_USER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (str(user_id), _stamp(created_at), _stamp(updated_at), name, email,
                 password, _new_api_key()),
            )
            row = self._one(conn, f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (str(user_id),))
        return _user(row)

    def get_user_by_api_key(self, api_key) -> User:
        with self._transaction() as conn:
            row = self._one(conn, f"SELECT {_USER_COLUMNS} FROM users WHERE api_key = ?", (api_key,))
        return _user(row)

    # feeds

    def create_feed(self, feed_id, created_at, updated_at, name, url, user_id) -> Feed:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO feeds (id, created_at, updated_at, name, url, user_id) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (str(feed_id), _stamp(created_at), _stamp(updated_at), name, url, str(user_id)),
            )
            row = self._one(conn, f"SELECT {_FEED_COLUMNS} FROM feeds WHERE id = ?", (str(feed_id),))
        return _feed(row)

    def get_feeds(self) -> list[Feed]:
        with self._transaction() as conn:
            rows = conn.execute(f"SELECT {_FEED_COLUMNS} FROM feeds").fetchall()
        return [_feed(row) for row in rows]

    def get_next_feeds_to_fetch(self, limit) -> list[Feed]:
        """Feeds never fetched come first, then the least recently fetched."""
        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT {_FEED_COLUMNS} FROM feeds "
                "ORDER BY last_fetched_at IS NOT NULL, last_fetched_at ASC LIMIT ?",
                (int(limit),),
            ).fetchall()
        return [_feed(row) for row in rows]

    def mark_feed_as_fetched(self, feed_id) -> Feed:
        now = _stamp(datetime.now(timezone.utc))
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE feeds SET last_fetched_at = ?, updated_at = ? WHERE id = ?",
                (now, now, str(feed_id)),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("no rows in result set")
            row = self._one(conn, f"SELECT {_FEED_COLUMNS} FROM feeds WHERE id = ?", (str(feed_id),))
        return _feed(row)

    # feed follows

    def create_feed_follow(self, follow_id, created_at, updated_at, user_id, feed_id) -> FeedFollow:
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO feed_follows ({_FOLLOW_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                (str(follow_id), _stamp(created_at), _stamp(updated_at), str(user_id), str(feed_id)),
            )
            row = self._one(
                conn, f"SELECT {_FOLLOW_COLUMNS} FROM feed_follows WHERE id = ?", (str(follow_id),)
            )
        return _follow(row)

    def get_feed_follows(self, user_id) -> list[FeedFollow]:
        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT {_FOLLOW_COLUMNS} FROM feed_follows WHERE user_id = ?", (str(user_id),)
            ).fetchall()
        return [_follow(row) for row in rows]

    def delete_feed_follow(self, follow_id, user_id) -> None:
        """Delete a follow if it belongs to the user; otherwise do nothing."""
        with self._transaction() as conn:
            conn.execute(
                "DELETE FROM feed_follows WHERE id = ? AND user_id = ?",
                (str(follow_id), str(user_id)),
            )

    # posts

    def create_post(
        self, post_id, created_at, updated_at, title, description, published_at, url, feed_id
    ) -> Post:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO posts (id, created_at, updated_at, title, description, "
                "published_at, url, feed_id) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (str(post_id), _stamp(created_at), _stamp(updated_at), title, description,
                 _stamp(published_at), url, str(feed_id)),
            )
            row = self._one(conn, f"SELECT {_POST_COLUMNS} FROM posts WHERE id = ?", (str(post_id),))
        return _post(row)

    def get_posts_for_user(self, user_id, limit) -> list[Post]:
        """Newest posts from the feeds the user follows."""
        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT {_POST_COLUMNS} FROM posts "
                "JOIN feed_follows ON posts.feed_id = feed_follows.feed_id "
                "WHERE feed_follows.user_id = ? "
                "ORDER BY posts.published_at DESC LIMIT ?",
                (str(user_id), int(limit)),
            ).fetchall()
        return [_post(row) for row in rows]