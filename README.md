# blogrss

blogrss is a small JSON web service for following blogs. Users register,
add RSS feeds, follow the feeds they care about, and read the newest posts
from everything they follow. Users, feeds, follows and posts are kept in a
SQLite database. A scraper, in `blogrss.scraper`, visits the feeds that
have waited longest and stores their items as posts.

## Running the server

The `blogrss` command reads its settings from a `.env` file in the working
directory:

```
PORT=8080
DATABASE_URL=blogrss.db
```

`PORT` is the port to listen on (an integer) and `DATABASE_URL` is the path
of the SQLite database file; a leading `sqlite:///` is stripped. Both are
required, and the command exits with a message when the `.env` file or
either setting is missing. It serves on all interfaces:

```
blogrss
```

The command takes no options other than `--help`.

## The API

Every route lives under `/api/v1`. Requests and responses are JSON.
Routes marked *auth* need the header

```
Authorization: ApiKey placeholder
```

where `placeholder` stands for the key returned when the user was created.
A missing, malformed or unknown key is answered with status 403.

| Method | Path                                   | Auth | What it does                                  |
|--------|----------------------------------------|------|-----------------------------------------------|
| GET    | `/ready`                               |      | Health check, answers `{}`                    |
| GET    | `/err`                                 |      | Always answers 400 with an error body         |
| POST   | `/user`                                |      | Create a user; answers 201 with the API key   |
| GET    | `/user`                                | auth | The calling user's name and e-mail            |
| POST   | `/feed`                                | auth | Add a feed (`name`, `url`)                    |
| GET    | `/feed/all`                            |      | List every feed                               |
| POST   | `/user/feed/follow`                    | auth | Follow a feed (`feedId`)                      |
| GET    | `/user/feed/follows/all`               | auth | The calling user's follows                    |
| DELETE | `/user/feed/follow/{feedFollowId}`     | auth | Stop following                                |
| GET    | `/user/posts`                          | auth | The ten newest posts from followed feeds      |

Errors come back as `{"error": "..."}` with status 400 (or 403 for
authentication problems). Feed URLs and post URLs are unique; adding a
feed twice is answered with 400.

Creating a user:

```json
POST /api/v1/user
{"name": "Ada", "email": "ada@example.com", "password": "password"}
```

answers

```json
{"name": "Ada", "email": "ada@example.com", "apiKey": "..."}
```

Cross-origin requests are allowed from any `http://` or `https://` origin
for the methods GET, POST, PUT, DELETE and OPTIONS; preflight answers carry
`Access-Control-Max-Age: 300`, and the `Link` header is exposed.

## Using it from Python

The application can be built around a database and served or tested
without the command:

```python
from blogrss.app import create_app
from blogrss.database import Database

with Database("blogrss.db") as db:
    app = create_app(db)
    client = app.test_client()
    print(client.get("/api/v1/ready").status_code)
```

`Database` offers the queries the API uses (`create_user`,
`get_user_by_api_key`, `create_feed`, `get_feeds`,
`get_next_feeds_to_fetch`, `mark_feed_as_fetched`, `create_feed_follow`,
`get_feed_follows`, `delete_feed_follow`, `create_post`,
`get_posts_for_user`) and raises `DatabaseError`, `NotFoundError` or
`DuplicateKeyError` when they fail.

## Collecting posts

`blogrss.scraper` fetches feeds and stores their items:

- `scrape_round(db, concurrency)` takes up to `concurrency` feeds, never
  fetched ones first, then the least recently fetched, downloads them in
  parallel and stores their posts.
- `scrape_forever(db, concurrency, interval)` runs a round at once and then
  every `interval` seconds (or `timedelta`), and does not return.
- `parse_any_time` understands the usual RSS and ISO date formats and
  raises `ValueError` for anything else.

```python
from blogrss.scraper import parse_any_time

parse_any_time("Mon, 02 Jan 2006 15:04:05 -0700")
```

Both scraping functions take an optional `fetch` callable that turns a URL
into an `RSSFeed`; by default `blogrss.rss.url_to_feed` downloads it with a
ten-second timeout. `blogrss.rss.parse_feed` reads an RSS document from
bytes or text.

## What it does not do

Running the scraper on a schedule is left to the caller: call
`scrape_forever` from a thread or process of your own to keep the post
lists filled. Storage is SQLite only; `DATABASE_URL` is taken as a file
path, not as a server address.