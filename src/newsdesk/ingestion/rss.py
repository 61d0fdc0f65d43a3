"""
Ingestion from RSS sources
"""
import asyncio
import calendar
import logging
from datetime import datetime, timezone
from typing import List, Optional

import feedparser
import httpx

from newsdesk.core.entities import Source
from newsdesk.core.errors import ScrapeError
from newsdesk.ingestion.base import CandidateArticle, Scraper, fetch_text

logger = logging.getLogger(__name__)


def _entry_published(entry) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            # feedparser normalizes struct_time to UTC
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
    return None


def parse_feed(body: str) -> List[CandidateArticle]:
    feed = feedparser.parse(body)
    if feed.bozo and not feed.entries:
        raise ScrapeError(f"parse error: {feed.get('bozo_exception', 'malformed feed')}")

    items: List[CandidateArticle] = []
    for entry in feed.entries:
        link = entry.get("link")
        title = (entry.get("title") or "").strip()
        if not link or not title:
            continue

        content = None
        if entry.get("content"):
            content = entry.content[0].get("value")

        items.append(
            CandidateArticle(
                title=title,
                url=link,
                summary=entry.get("summary"),
                content=content,
                published_at=_entry_published(entry),
            )
        )
    return items


class RSSScraper(Scraper):
    def __init__(
        self,
        *,
        timeout: float = 30.0,
        user_agent: str = "newsdesk/1.0",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self.client = client

    async def fetch(self, source: Source) -> List[CandidateArticle]:
        url = source.feed_url or source.url
        body = await fetch_text(url, timeout=self.timeout, user_agent=self.user_agent, client=self.client)

        loop = asyncio.get_running_loop()
        items = await loop.run_in_executor(None, parse_feed, body)
        logger.info(f"Fetched {len(items)} entries from feed {source.name}")
        return items
