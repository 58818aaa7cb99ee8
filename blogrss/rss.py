"""Fetching and reading RSS documents."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Union

import requests


@dataclass
class RSSItem:
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""


@dataclass
class RSSFeed:
    title: str = ""
    link: str = ""
    description: str = ""
    language: str = ""
    items: list[RSSItem] = field(default_factory=list)


def _local(tag) -> str:
    return tag.rpartition("}")[2] if isinstance(tag, str) else ""


def _text(element: ET.Element) -> str:
    """The element's own character data, without that of nested elements."""
    return (element.text or "") + "".join(child.tail or "" for child in element)


# The item title is read from the <string> element.
_ITEM_FIELDS = {"string": "title", "link": "link", "description": "description",
                "pubDate": "pub_date"}
_CHANNEL_FIELDS = {"title": "title", "link": "link", "description": "description",
                   "language": "language"}


def _item(element: ET.Element) -> RSSItem:
    item = RSSItem()
    for child in element:
        name = _ITEM_FIELDS.get(_local(child.tag))
        if name is not None:
            setattr(item, name, _text(child))
    return item


def parse_feed(data: Union[bytes, str]) -> RSSFeed:
    """Read an RSS document; raise ``xml.etree.ElementTree.ParseError`` if malformed."""
    root = ET.fromstring(data)
    feed = RSSFeed()
    for channel in (c for c in root if _local(c.tag) == "channel"):
        for child in channel:
            tag = _local(child.tag)
            if tag == "item":
                feed.items.append(_item(child))
            elif tag in _CHANNEL_FIELDS:
                setattr(feed, _CHANNEL_FIELDS[tag], _text(child))
    return feed


def url_to_feed(url: str, timeout: float = 10.0) -> RSSFeed:
    """Download and read the feed at ``url``, whatever the response status."""
    response = requests.get(url, timeout=timeout)
    return parse_feed(response.content)