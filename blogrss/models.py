"""JSON shapes that the API returns for stored records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import UUID

from .records import Feed, FeedFollow, Post, User

_ZERO_ID = UUID(int=0)
_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


def _timestamp(value: datetime) -> str:
    """Format a time as RFC 3339, dropping trailing zeros of the fraction."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset()
    minutes = int(offset.total_seconds()) // 60
    if minutes == 0:
        return text + "Z"
    sign = "+" if minutes > 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"{text}{sign}{hours:02d}:{mins:02d}"


def user_to_json(user: User) -> dict[str, Any]:
    """A user as returned on registration, with the API key."""
    return {"name": user.name, "email": user.email, "apiKey": user.api_key}


def user_to_public_json(user: User) -> dict[str, Any]:
    """A user without the API key."""
    return {"name": user.name, "email": user.email}


def feed_to_json(feed: Feed) -> dict[str, Any]:
    return {"id": str(feed.id), "name": feed.name, "url": feed.url}


def feeds_to_json(feeds: Iterable[Feed]) -> list[dict[str, Any]]:
    return [feed_to_json(feed) for feed in feeds]


def feed_follow_to_json(follow: FeedFollow) -> dict[str, Any]:
    return {"user_id": str(follow.user_id), "feed_id": str(follow.feed_id)}


def feed_follows_to_json(follows: Iterable[FeedFollow]) -> list[dict[str, Any]]:
    return [feed_follow_to_json(follow) for follow in follows]


def post_to_json(post: Post) -> dict[str, Any]:
    """A post as listed to a user.

    The post's own id and timestamps are not carried over; they are
    reported as the zero id and the zero time.
    """
    return {
        "id": str(_ZERO_ID),
        "created_at": _timestamp(_ZERO_TIME),
        "updated_at": _timestamp(_ZERO_TIME),
        "title": post.title,
        "description": post.description,
        "published_at": _timestamp(post.published_at),
        "url": post.url,
        "feed_id": str(post.feed_id),
    }


def posts_to_json(posts: Iterable[Post]) -> list[dict[str, Any]]:
    return [post_to_json(post) for post in posts]