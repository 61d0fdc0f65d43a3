"""Tests for the RSS and HTML scrapers."""

from datetime import datetime, timezone
from unittest.mock import patch

import httpx
import pytest

from newsdesk.core.entities import OwnerScope, Source, SourceKind
from newsdesk.core.errors import ScrapeError
from newsdesk.ingestion.html import HTMLScraper
from newsdesk.ingestion.rss import RSSScraper, parse_feed
from newsdesk.ingestion.source_factory import KindRoutingScraper

from conftest import FakeScraper, run

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example feed</title>
    <item>
      <title>First story</title>
      <link>https://news.example.com/1</link>
      <description>About the first story</description>
      <pubDate>Sat, 01 Jun 2024 10:00:00 +0200</pubDate>
    </item>
    <item>
      <title>No link here</title>
    </item>
    <item>
      <title>Undated story</title>
      <link>https://news.example.com/2</link>
    </item>
  </channel>
</rss>
"""


def source(kind=SourceKind.RSS, url="https://feed.example.com/rss"):
    return Source(
        id="s1",
        owner=OwnerScope(),
        name="Example",
        url=url,
        kind=kind,
        active=True,
        created_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestParseFeed:
    """Tests for parse_feed."""

    def test_parses_entries_and_skips_incomplete_ones(self):
        items = parse_feed(RSS)

        assert [i.title for i in items] == ["First story", "Undated story"]
        assert items[0].url == "https://news.example.com/1"
        assert items[0].summary == "About the first story"
        assert items[0].published_at == datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
        assert items[1].published_at is None

    def test_garbage_is_a_parse_error(self):
        with pytest.raises(ScrapeError, match="parse error"):
            parse_feed("<<<this is not a feed")


class TestRSSScraper:
    """Tests for RSSScraper.fetch."""

    def test_fetches_and_parses(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, text=RSS)

        async def scenario():
            async with client_for(handler) as client:
                return await RSSScraper(client=client).fetch(source())

        items = run(scenario())

        assert len(items) == 2
        assert seen == ["https://feed.example.com/rss"]

    def test_http_error_status(self):
        async def scenario():
            async with client_for(lambda request: httpx.Response(503)) as client:
                return await RSSScraper(client=client).fetch(source())

        with pytest.raises(ScrapeError, match="http 503"):
            run(scenario())

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        async def scenario():
            async with client_for(handler) as client:
                return await RSSScraper(client=client).fetch(source())

        with pytest.raises(ScrapeError, match="^timeout$"):
            run(scenario())


class TestHTMLScraper:
    """Tests for HTMLScraper.fetch."""

    def test_extracts_one_article_per_page(self):
        page = "<html><head><title>Page</title></head><body><p>Body</p></body></html>"

        async def scenario():
            async with client_for(lambda request: httpx.Response(200, text=page)) as client:
                return await HTMLScraper(client=client).fetch(source(SourceKind.HTML, "https://blog.example.com/post"))

        with patch("newsdesk.ingestion.html.trafilatura.extract", return_value="Long body text"), \
                patch("newsdesk.ingestion.html.extract_metadata", return_value=None):
            items = run(scenario())

        assert len(items) == 1
        assert items[0].title == "Example"
        assert items[0].url == "https://blog.example.com/post"
        assert items[0].content == "Long body text"

    def test_empty_extraction_is_a_parse_error(self):
        async def scenario():
            async with client_for(lambda request: httpx.Response(200, text="<html></html>")) as client:
                return await HTMLScraper(client=client).fetch(source(SourceKind.HTML))

        with patch("newsdesk.ingestion.html.trafilatura.extract", return_value=None):
            with pytest.raises(ScrapeError, match="no extractable content"):
                run(scenario())


class TestKindRoutingScraper:
    """Tests for routing by source kind."""

    def test_routes_by_kind(self):
        rss = FakeScraper({"Example": []})
        html = FakeScraper()
        router = KindRoutingScraper({SourceKind.RSS: rss, SourceKind.HTML: html})

        run(router.fetch(source(SourceKind.HTML)))

        assert html.calls == ["Example"]
        assert rss.calls == []

    def test_unsupported_kind(self):
        router = KindRoutingScraper({SourceKind.RSS: FakeScraper()})

        with pytest.raises(ScrapeError, match="unsupported source kind"):
            run(router.fetch(source(SourceKind.HTML)))
