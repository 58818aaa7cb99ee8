import xml.etree.ElementTree as ET

import pytest
import requests
import responses

from blogrss.rss import RSSFeed, RSSItem, parse_feed, url_to_feed

URL = "http://feeds.example.com/rss"

SAMPLE = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
<channel>
<title>Example Blog</title>
<link>https://blog.example.com/</link>
<description>Notes</description>
<language>en-us</language>
<item>
<title>First</title>
<string>First post</string>
<link>https://blog.example.com/1</link>
<description>Hello</description>
<pubDate>Mon, 02 Jan 2006 15:04:05 -0700</pubDate>
</item>
<item>
<link>https://blog.example.com/2</link>
</item>
</channel>
</rss>"""


def test_parse_channel_fields():
    feed = parse_feed(SAMPLE)
    assert (feed.title, feed.link, feed.description, feed.language) == (
        "Example Blog", "https://blog.example.com/", "Notes", "en-us",
    )
    assert len(feed.items) == 2


def test_parse_item_fields():
    first, second = parse_feed(SAMPLE).items
    assert first == RSSItem(
        title="First post",
        link="https://blog.example.com/1",
        description="Hello",
        pub_date="Mon, 02 Jan 2006 15:04:05 -0700",
    )
    assert second == RSSItem(link="https://blog.example.com/2")


def test_parse_accepts_text():
    assert parse_feed(SAMPLE.decode()).title == "Example Blog"


def test_document_without_channel_is_empty():
    assert parse_feed(b"<rss></rss>") == RSSFeed()


def test_cdata_and_nested_elements():
    doc = (b"<rss><channel><item><description><![CDATA[<p>Hi</p>]]></description>"
           b"<link>a<b>x</b>c</link></item></channel></rss>")
    item = parse_feed(doc).items[0]
    assert item.description == "<p>Hi</p>"
    assert item.link == "ac"


def test_namespaced_elements_match_by_local_name():
    doc = b'<rss xmlns:dc="urn:x-dc"><channel><dc:language>fr</dc:language></channel></rss>'
    assert parse_feed(doc).language == "fr"


@pytest.mark.parametrize("data", [b"", b"<rss><channel>", b"not xml"])
def test_malformed_documents_raise(data):
    with pytest.raises(ET.ParseError):
        parse_feed(data)


def test_url_to_feed_fetches_and_parses():
    with responses.RequestsMock() as mocked:
        mocked.add(responses.GET, URL, body=SAMPLE, status=200)
        feed = url_to_feed(URL)
    assert feed.title == "Example Blog"
    assert [item.link for item in feed.items] == [
        "https://blog.example.com/1", "https://blog.example.com/2",
    ]


def test_url_to_feed_ignores_status_code():
    with responses.RequestsMock() as mocked:
        mocked.add(responses.GET, URL, body=SAMPLE, status=404)
        assert url_to_feed(URL, timeout=1).language == "en-us"


def test_url_to_feed_rejects_bad_body():
    with responses.RequestsMock() as mocked:
        mocked.add(responses.GET, URL, body=b"<html>", status=200)
        with pytest.raises(ET.ParseError):
            url_to_feed(URL)


def test_url_to_feed_propagates_connection_errors():
    with responses.RequestsMock() as mocked:
        mocked.add(responses.GET, URL, body=requests.ConnectionError("refused"))
        with pytest.raises(requests.ConnectionError):
            url_to_feed(URL)