"""Rows as they are stored in and read back from the database."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID


@dataclass(frozen=True)
class User:
    """A registered user and the API key the database issued to them."""

    id: UUID
    created_at: datetime
    updated_at: datetime
    name: str
    email: str
    password: str
    api_key: str


@dataclass(frozen=True)
class Feed:
    """An RSS feed added by a user."""

    id: UUID
    created_at: datetime
    updated_at: datetime
    name: str
    url: str
    user_id: UUID
    last_fetched_at: Optional[datetime] = None


@dataclass(frozen=True)
class FeedFollow:
    """A user's subscription to a feed."""

    id: UUID
    created_at: datetime
    updated_at: datetime
    user_id: UUID
    feed_id: UUID


@dataclass(frozen=True)
class Post:
    """An item collected from a feed."""

    id: UUID
    created_at: datetime
    updated_at: datetime
    title: str
    description: Optional[str]
    published_at: datetime
    url: str
    feed_id: UUID