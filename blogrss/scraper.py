"""Background collection of posts from the stored feeds."""

from __future__ import annotations

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Callable, Union
from uuid import uuid4

from .database import Database, DatabaseError, DuplicateKeyError
from .records import Feed
from .rss import RSSFeed, url_to_feed

log = logging.getLogger(__name__)

Fetch = Callable[[str], RSSFeed]

_MONTHS = ("jan", "feb", "mar", "apr", "may", "jun",
           "jul", "aug", "sep", "oct", "nov", "dec")

# Layout elements, written with the reference time Mon Jan 2 15:04:05 MST 2006.
_TOKENS = {
    "Z07:00": r"(?P<iso>Z|[+-]\d{2}:\d{2})",
    "-0700": r"(?P<num>[+-]\d{4})",
    "2006": r"(?P<year>\d{4})",
    "Mon": r"(?i:Mon|Tue|Wed|Thu|Fri|Sat|Sun)",
    "Jan": r"(?P<mon>(?i:" + "|".join(_MONTHS) + "))",
    "MST": r"(?P<abbr>GMT[+-]\d{1,2}|ChST|MeST|WITA|[A-Z]{4}T|[A-Z]{3}T|[A-Z]{3})",
    "PM": r"(?P<ampm>AM|PM)",
    ".999999999": "",  # seconds already take an optional fraction
    "_2": r" ?(?P<day>\d{1,2})",
    "01": r"(?P<month>\d{2})",
    "02": r"(?P<day>\d{2})",
    "04": r"(?P<minute>\d{2})",
    "05": r"(?P<second>\d{2})(?:[.,](?P<frac>\d+))?",
    "06": r"(?P<yy>\d{2})",
    "15": r"(?P<hour>\d{1,2})",
    "3": r"(?P<hour12>\d{1,2})",
}
_TOKEN_RE = re.compile("(" + "|".join(re.escape(token) for token in _TOKENS) + ")")

_LAYOUTS = (
    "Mon, 02 Jan 2006 15:04:05 -0700",
    "Mon, 02 Jan 2006 15:04:05 MST",
    "02 Jan 06 15:04 -0700",
    "02 Jan 06 15:04 MST",
    "2006-01-02T15:04:05Z07:00",
    "2006-01-02T15:04:05.999999999Z07:00",
    "Mon Jan _2 15:04:05 2006",
    "Mon Jan _2 15:04:05 MST 2006",
    "Mon Jan 02 15:04:05 -0700 2006",
    "3:04PM",
    "2006-01-02 15:04:05",
    "02 Jan 2006 15:04:05 MST",
)


def _compile(layout: str) -> re.Pattern:
    return re.compile("".join(
        _TOKENS[piece] if piece in _TOKENS else re.escape(piece)
        for piece in _TOKEN_RE.split(layout)
    ))


_PATTERNS = tuple(_compile(layout) for layout in _LAYOUTS)


def _zone(fields: dict) -> timezone:
    if fields.get("iso") and fields["iso"] != "Z":
        sign = -1 if fields["iso"][0] == "-" else 1
        hours, minutes = fields["iso"][1:].split(":")
        return timezone(sign * timedelta(hours=int(hours), minutes=int(minutes)))
    if fields.get("num"):
        sign = -1 if fields["num"][0] == "-" else 1
        return timezone(sign * timedelta(hours=int(fields["num"][1:3]),
                                         minutes=int(fields["num"][3:5])))
    abbr = fields.get("abbr") or ""
    if abbr.startswith("GMT") and len(abbr) > 3:
        return timezone(timedelta(hours=int(abbr[3:])))
    # Other zone abbreviations carry no known offset and are taken as UTC.
    return timezone.utc


def _build(fields: dict) -> datetime:
    if fields.get("year"):
        year = int(fields["year"])
    elif fields.get("yy"):
        yy = int(fields["yy"])
        year = yy + (1900 if yy >= 69 else 2000)
    else:
        year = 1  # a bare clock time has no date
    if fields.get("mon"):
        month = _MONTHS.index(fields["mon"].lower()) + 1
    else:
        month = int(fields.get("month") or 1)
    if fields.get("hour12"):
        hour = int(fields["hour12"])
        if hour > 12:
            raise ValueError("hour out of range")
        if fields.get("ampm") == "PM" and hour < 12:
            hour += 12
        elif fields.get("ampm") == "AM" and hour == 12:
            hour = 0
    else:
        hour = int(fields.get("hour") or 0)
    frac = fields.get("frac") or ""
    return datetime(
        year, month, int(fields.get("day") or 1), hour,
        int(fields.get("minute") or 0), int(fields.get("second") or 0),
        int(frac[:6].ljust(6, "0")), tzinfo=_zone(fields),
    )


def parse_any_time(text: str) -> datetime:
    """Parse a date in any of the common feed formats; raise ValueError otherwise."""
    for pattern in _PATTERNS:
        match = pattern.fullmatch(text)
        if match is None:
            continue
        try:
            return _build(match.groupdict())
        except ValueError:
            continue
    raise ValueError(f"unable to parse time: {text}")


def scrape_feed(db: Database, feed: Feed, fetch: Fetch = url_to_feed) -> None:
    """Mark a feed as fetched, download it and store its items as posts."""
    try:
        db.mark_feed_as_fetched(feed.id)
    except DatabaseError as exc:
        log.warning("err marking feed as fetched: %s", exc)
        return

    try:
        rss_feed = fetch(feed.url)
    except Exception as exc:
        log.warning("Error fetching feed: %s", exc)
        return

    for item in rss_feed.items:
        try:
            published_at = parse_any_time(item.pub_date)
        except ValueError as exc:
            log.warning("Error parsing time: %s", exc)
            continue
        now = datetime.now(timezone.utc)
        try:
            db.create_post(uuid4(), now, now, item.title, item.description or None,
                           published_at, item.link, feed.id)
        except DuplicateKeyError:
            return
        except DatabaseError as exc:
            log.warning("failed to create post %s", exc)
            return

    log.info("Feed %s collected, %d posts found", feed.name, len(rss_feed.items))


def scrape_round(db: Database, concurrency: int, fetch: Fetch = url_to_feed) -> list[Feed]:
    """Scrape the next ``concurrency`` feeds in parallel and return them."""
    try:
        feeds = db.get_next_feeds_to_fetch(concurrency)
    except DatabaseError as exc:
        log.warning("error fetching feeds: %s", exc)
        return []
    if feeds:
        with ThreadPoolExecutor(max_workers=len(feeds)) as pool:
            for future in [pool.submit(scrape_feed, db, feed, fetch) for feed in feeds]:
                future.result()
    return feeds


def scrape_forever(
    db: Database,
    concurrency: int,
    interval: Union[float, timedelta],
    fetch: Fetch = url_to_feed,
) -> None:
    """Run a scrape round at once and then on every tick of ``interval``.

    Never returns on its own; ticks missed by a slow round are dropped.
    """
    seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
    if seconds <= 0:
        raise ValueError("interval must be positive")
    next_tick = time.monotonic()
    while True:
        scrape_round(db, concurrency, fetch)
        next_tick += seconds
        now = time.monotonic()
        if next_tick < now:
            next_tick = now + seconds - (now - next_tick) % seconds
        time.sleep(next_tick - now)