import string
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from blogrss.database import Database, DatabaseError, DuplicateKeyError, NotFoundError

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


def make_user(db, name="alice"):
    password = "password"
    return db.create_user(uuid4(), NOW, NOW, name, f"{name}@example.com", password=password)


def make_feed(db, user, url="https://example.com/rss"):
    return db.create_feed(uuid4(), NOW, NOW, "News", url, user.id)


def test_create_user_round_trip(db):
    user_id = uuid4()
    password = "password"
    user = db.create_user(user_id, NOW, NOW, "alice", "alice@example.com", password=password)
    assert user.id == user_id
    assert user.name == "alice"
    assert user.email == "alice@example.com"
    assert user.password == password
    assert user.created_at == NOW
    assert db.get_user_by_api_key(user.api_key) == user


def test_api_key_is_sha256_hex_and_unique(db):
    first = make_user(db, "alice")
    second = make_user(db, "bob")
    assert len(first.api_key) == 64
    assert set(first.api_key) <= set(string.hexdigits.lower())
    assert first.api_key != second.api_key


def test_unknown_api_key_raises_not_found(db):
    make_user(db)
    with pytest.raises(NotFoundError):
        db.get_user_by_api_key("placeholder")


def test_naive_times_are_read_as_utc(db):
    naive = datetime(2024, 3, 4, 5, 6, 7)
    password = "password"
    user = db.create_user(uuid4(), naive, naive, "carol", "carol@example.com", password=password)
    assert user.created_at == naive.replace(tzinfo=timezone.utc)


def test_create_and_list_feeds(db):
    user = make_user(db)
    feed = make_feed(db, user)
    assert feed.user_id == user.id
    assert feed.last_fetched_at is None
    assert db.get_feeds() == [feed]


def test_duplicate_feed_url_raises_duplicate_key(db):
    user = make_user(db)
    make_feed(db, user)
    with pytest.raises(DuplicateKeyError) as info:
        make_feed(db, user)
    assert "duplicate key" in str(info.value)


def test_feed_for_unknown_user_is_rejected(db):
    with pytest.raises(DatabaseError) as info:
        db.create_feed(uuid4(), NOW, NOW, "News", "https://example.com/rss", uuid4())
    assert not isinstance(info.value, DuplicateKeyError)


def test_mark_feed_as_fetched_sets_timestamp(db):
    user = make_user(db)
    feed = make_feed(db, user)
    before = datetime.now(timezone.utc)
    marked = db.mark_feed_as_fetched(feed.id)
    assert marked.id == feed.id
    assert marked.last_fetched_at is not None and marked.last_fetched_at >= before
    assert marked.updated_at == marked.last_fetched_at


def test_mark_unknown_feed_raises_not_found(db):
    with pytest.raises(NotFoundError):
        db.mark_feed_as_fetched(uuid4())


def test_next_feeds_put_unfetched_first(db):
    user = make_user(db)
    fetched = make_feed(db, user, "https://example.com/a")
    unfetched = make_feed(db, user, "https://example.com/b")
    db.mark_feed_as_fetched(fetched.id)
    ids = [feed.id for feed in db.get_next_feeds_to_fetch(10)]
    assert ids == [unfetched.id, fetched.id]
    assert [feed.id for feed in db.get_next_feeds_to_fetch(1)] == [unfetched.id]


def test_next_feeds_order_by_oldest_fetch(db):
    user = make_user(db)
    first = make_feed(db, user, "https://example.com/a")
    second = make_feed(db, user, "https://example.com/b")
    db.mark_feed_as_fetched(second.id)
    db.mark_feed_as_fetched(first.id)
    ids = [feed.id for feed in db.get_next_feeds_to_fetch(2)]
    assert ids == [second.id, first.id]


def test_feed_follow_round_trip_and_delete(db):
    user = make_user(db)
    feed = make_feed(db, user)
    follow_id = uuid4()
    follow = db.create_feed_follow(follow_id, NOW, NOW, user.id, feed.id)
    assert (follow.id, follow.user_id, follow.feed_id) == (follow_id, user.id, feed.id)
    assert db.get_feed_follows(user.id) == [follow]
    db.delete_feed_follow(follow_id, user.id)
    assert db.get_feed_follows(user.id) == []


def test_delete_follow_of_other_user_does_nothing(db):
    owner = make_user(db, "alice")
    other = make_user(db, "bob")
    feed = make_feed(db, owner)
    follow = db.create_feed_follow(uuid4(), NOW, NOW, owner.id, feed.id)
    db.delete_feed_follow(follow.id, other.id)
    assert db.get_feed_follows(owner.id) == [follow]


def test_following_twice_raises_duplicate_key(db):
    user = make_user(db)
    feed = make_feed(db, user)
    db.create_feed_follow(uuid4(), NOW, NOW, user.id, feed.id)
    with pytest.raises(DuplicateKeyError):
        db.create_feed_follow(uuid4(), NOW, NOW, user.id, feed.id)


def test_create_post_round_trip(db):
    user = make_user(db)
    feed = make_feed(db, user)
    post = db.create_post(uuid4(), NOW, NOW, "Hello", None, NOW, "https://example.com/p", feed.id)
    assert post.title == "Hello"
    assert post.description is None
    assert post.published_at == NOW
    assert post.feed_id == feed.id


def test_duplicate_post_url_raises_duplicate_key(db):
    user = make_user(db)
    feed = make_feed(db, user)
    db.create_post(uuid4(), NOW, NOW, "A", "text", NOW, "https://example.com/p", feed.id)
    with pytest.raises(DuplicateKeyError) as info:
        db.create_post(uuid4(), NOW, NOW, "B", "text", NOW, "https://example.com/p", feed.id)
    assert "duplicate key" in str(info.value)


def test_posts_for_user_newest_first_and_limited(db):
    user = make_user(db, "alice")
    other = make_user(db, "bob")
    followed = make_feed(db, user, "https://example.com/a")
    unfollowed = make_feed(db, user, "https://example.com/b")
    db.create_feed_follow(uuid4(), NOW, NOW, user.id, followed.id)
    db.create_feed_follow(uuid4(), NOW, NOW, other.id, unfollowed.id)
    times = [NOW + timedelta(hours=offset) for offset in (1, 3, 2)]
    for index, published in enumerate(times):
        db.create_post(uuid4(), NOW, NOW, f"p{index}", None, published,
                       f"https://example.com/a/{index}", followed.id)
    db.create_post(uuid4(), NOW, NOW, "hidden", None, NOW + timedelta(hours=9),
                   "https://example.com/b/0", unfollowed.id)
    posts = db.get_posts_for_user(user.id, 10)
    assert [post.published_at for post in posts] == sorted(times, reverse=True)
    assert all(post.feed_id == followed.id for post in posts)
    assert len(db.get_posts_for_user(user.id, 2)) == 2


def test_closed_database_raises(db):
    with Database(":memory:") as closed:
        make_user(closed)
    with pytest.raises(DatabaseError):
        closed.get_feeds()