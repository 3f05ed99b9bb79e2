"""Shared fixtures for the news fetcher tests."""

import pytest

from config import Config
from database import Database

RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example News</title>
    <link>https://example.com</link>
    <item>
      <title>First story</title>
      <link>https://example.com/1</link>
      <guid>story-1</guid>
      <description>&lt;p&gt;First &lt;b&gt;summary&lt;/b&gt;&lt;/p&gt;</description>
      <pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>
      <media:content url="https://example.com/1.jpg" medium="image"/>
    </item>
    <item>
      <title>Second story</title>
      <link>https://example.com/2</link>
      <guid>story-2</guid>
      <description>Second summary</description>
      <pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Atom</title>
  <entry>
    <title>Atom story</title>
    <link rel="self" href="https://example.com/atom/1.xml"/>
    <link rel="alternate" href="https://example.com/atom/1"/>
    <id>urn:uuid:1225c695</id>
    <updated>2024-01-02T03:04:05Z</updated>
    <summary>Atom summary</summary>
  </entry>
</feed>
"""


@pytest.fixture
def rss_feed() -> str:
    return RSS_FEED


@pytest.fixture
def atom_feed() -> str:
    return ATOM_FEED


@pytest.fixture
def db():
    """Fresh in-memory store with default settings seeded."""
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        db_path=tmp_path / "news.db",
        max_workers=2,
        fetch_timeout_seconds=5.0,
        log_dir=tmp_path / "log",
    )
